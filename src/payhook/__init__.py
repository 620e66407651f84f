"""payhook - verify and dispatch payment provider webhooks."""

__version__ = "0.1.0"
