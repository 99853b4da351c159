"""Stories.fun backend API."""

__version__ = "1.0.0"
