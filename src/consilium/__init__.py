"""AI-assisted project specification and documentation generator."""

__version__ = "0.1.0"
