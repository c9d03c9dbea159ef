"""Sheet-backed salon management core."""

__version__ = "1.0.0"
