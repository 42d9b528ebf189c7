"""Release publishing and hosting backends."""
