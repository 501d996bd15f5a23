"""Queue-driven command runner with lifecycle webhooks."""

__version__ = "0.1.0"
