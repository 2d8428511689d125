"""VIP payment service API."""

__version__ = "0.3.0"
