"""Scanning, aggregation and bookkeeping services."""

from .scanner import NewsletterScanner, ScanAggregator
from .stats import StatsStore
from .unsubscribe import UnsubscribeHandler

__all__ = [
    "NewsletterScanner",
    "ScanAggregator",
    "StatsStore",
    "UnsubscribeHandler",
]
