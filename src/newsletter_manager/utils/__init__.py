"""Utility modules."""

from newsletter_manager.utils.retry import wait_until

__all__ = [
    "wait_until",
]
