"""
prefixcrawl Crawler Module - Adaptive Prefix Exploration Engine

Discovers the full content of a paginated autocomplete endpoint by querying
it with prefixes and expanding every prefix whose page comes back full.

Key Features:
- Deduplicated frontier with at-most-once dispatch per prefix
- Global sliding-window rate limiting
- AIMD concurrency control fed by request outcomes and backlog samples
- Unbounded cooldown retries on 429, bounded exponential backoff on errors
- Dead-letter tracking for prefixes that fail for good
"""

from .concurrency import AdaptiveSemaphore, ConcurrencyController, ConcurrencyState, ControlSignal
from .dispatcher import Dispatcher
from .explorer import ExplorationReport, PrefixExplorer
from .frontier import Frontier, PrefixTask
from .http_client import AutocompleteClient
from .rate_limiter import SlidingWindowRateLimiter
from .retry import RetryAction, RetryDecision, RetryPolicy

__all__ = [
    "AdaptiveSemaphore",
    "AutocompleteClient",
    "ConcurrencyController",
    "ConcurrencyState",
    "ControlSignal",
    "Dispatcher",
    "ExplorationReport",
    "Frontier",
    "PrefixExplorer",
    "PrefixTask",
    "RetryAction",
    "RetryDecision",
    "RetryPolicy",
    "SlidingWindowRateLimiter",
]
