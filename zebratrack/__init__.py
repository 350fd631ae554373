"""Local time tracking with timesheet synchronisation against a Zebra server."""

__version__ = "0.1.0"
