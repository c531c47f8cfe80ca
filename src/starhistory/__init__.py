"""Star history for your GitHub profile."""
__version__ = "0.1.0"
