"""
Rate-limited dispatcher.

A query leaves the process only after it holds a concurrency slot and a
rate-window token. The slot is held until the request settles; the window
token is never returned, it simply ages out of the window.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

import structlog

from prefixcrawl.crawler.concurrency import AdaptiveSemaphore
from prefixcrawl.crawler.frontier import PrefixTask
from prefixcrawl.crawler.rate_limiter import SlidingWindowRateLimiter
from prefixcrawl.observability import metrics
from prefixcrawl.protocols import QueryClient, QueryOutcome

logger = structlog.get_logger(__name__)


class Dispatcher:
    """
    Args:
        client: Object implementing ``QueryClient``
        rate_limiter: Shared request window
        semaphore: Slot pool sized by the concurrency controller
        on_attempt: Called once per attempt, right before the query is issued
    """

    def __init__(
        self,
        client: QueryClient,
        rate_limiter: SlidingWindowRateLimiter,
        semaphore: AdaptiveSemaphore,
        on_attempt: Optional[Callable[[], None]] = None,
    ):
        self.client = client
        self.rate_limiter = rate_limiter
        self.semaphore = semaphore
        self.on_attempt = on_attempt
        self._dispatched = 0

    @property
    def in_flight(self) -> int:
        """Tasks holding a concurrency slot."""
        return self.semaphore.in_use

    @property
    def dispatched(self) -> int:
        return self._dispatched

    async def submit(self, task: PrefixTask) -> QueryOutcome:
        """
        Run one network attempt for ``task``.

        Suspends until a slot and a window token are both available, then
        issues the query and returns its classified outcome. The attempt is
        counted before the query runs, so it is counted even if the client
        raises.
        """
        async with self.semaphore:
            waited = await self.rate_limiter.acquire()
            task.attempts += 1
            self._dispatched += 1
            if self.on_attempt is not None:
                self.on_attempt()
            metrics.gauge("in_flight_requests", self.in_flight)
            start = time.monotonic()
            try:
                outcome = await self.client.query(task.prefix)
            finally:
                metrics.gauge("in_flight_requests", self.in_flight - 1)

        metrics.increment("requests_total", labels={"outcome": outcome.kind.value})
        logger.debug(
            "Query settled",
            prefix=task.prefix,
            attempt=task.attempts,
            outcome=outcome.kind.value,
            window_wait=round(waited, 3),
            elapsed=round(time.monotonic() - start, 3),
        )
        return outcome

    def get_stats(self) -> Dict[str, Any]:
        return {
            "in_flight": self.in_flight,
            "slot_limit": self.semaphore.limit,
            "slot_waiters": self.semaphore.waiting,
            "dispatched": self._dispatched,
            "rate_limiter": self.rate_limiter.get_stats(),
        }
