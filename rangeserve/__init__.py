"""Range-aware static byte-range server."""

__version__ = "0.1.0"
