"""SafePulse: community safety analytics and live dashboard metrics."""

__version__ = "0.1.0"
