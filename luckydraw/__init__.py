"""Phone-number lottery promotion backend."""

__version__ = "1.0.0"
