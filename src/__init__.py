"""Football-club calculation job queue."""

__version__ = "1.0.0"
