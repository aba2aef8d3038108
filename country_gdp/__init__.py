"""Country currency & GDP estimate API."""

__version__ = "1.0.0"
