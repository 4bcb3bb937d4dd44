"""snaplink: URL shortener with asynchronous click analytics."""

__version__ = "0.7.0"
