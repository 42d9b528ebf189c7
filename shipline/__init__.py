"""shipline: tag-triggered build and release orchestration."""

__version__ = "0.3.0"
