"""
Terminal-failure tracking for prefixcrawl.

Prefixes that exhaust their retries are kept in a dead-letter set instead of
being silently dropped.
"""

from .dead_letter import AbandonedPrefix, DeadLetterSet

__all__ = ["AbandonedPrefix", "DeadLetterSet"]
