"""Platform helpers: subprocesses and files."""
