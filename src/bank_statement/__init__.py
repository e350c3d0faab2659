"""Bank statement normalization: XML/HTML statements to typed transactions."""

__version__ = "0.1.0"
