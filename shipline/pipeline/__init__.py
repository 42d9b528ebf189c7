"""Pipeline model, scheduling and job execution."""
