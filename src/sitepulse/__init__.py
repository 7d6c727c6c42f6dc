"""sitepulse - multi-site pageview tracking and live analytics."""

__version__ = "0.1.0"
