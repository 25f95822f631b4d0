"""BloodLink donor certificate verification API."""

__version__ = "0.1.0"
