"""local-remote: provision and verify a personal Ubuntu development server."""

__version__ = "0.1.0"
