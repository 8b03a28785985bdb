"""Read-only HTML/PNG monitor for named connection pools."""

__version__ = "0.1.0"
