"""Build snap and snapd and try them out on a test machine."""

__version__ = "0.1.0"
