"""Newsletter detection and bulk-management toolkit."""

__version__ = "1.0.0"
