"""Question bank subject reconciliation."""

__version__ = "1.0.0"
