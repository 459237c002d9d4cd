"""Utility modules."""

from .retry import RetryPolicy

__all__ = [
    "RetryPolicy"
]
