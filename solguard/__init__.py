"""solguard: static vulnerability scanner core for smart contracts."""

__version__ = "0.3.0"
