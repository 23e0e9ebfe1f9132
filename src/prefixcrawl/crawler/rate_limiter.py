"""
Sliding-window request limiter.

Keeps a log of the timestamps of the most recent dispatches. A caller may
proceed only when fewer than ``max_requests`` timestamps fall inside the
trailing ``per_seconds`` window, so no window of that length, wherever it
starts, ever contains more than ``max_requests`` dispatches.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Callable, Deque, Dict

import structlog

logger = structlog.get_logger(__name__)

# A slot frees strictly after its timestamp leaves the window.
MIN_SLEEP_SECONDS = 0.001


class SlidingWindowRateLimiter:
    """
    Global limiter shared by every dispatch attempt.

    Waiters are served one at a time under a lock, which gives FIFO order
    among tasks blocked on window capacity.
    """

    def __init__(
        self,
        max_requests: int,
        per_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if per_seconds <= 0:
            raise ValueError("per_seconds must be positive")

        self.max_requests = max_requests
        self.per_seconds = per_seconds
        self._clock = clock
        self._window: Deque[float] = deque()
        self._lock = asyncio.Lock()

        self._total_acquired = 0
        self._total_wait = 0.0

        logger.info("Rate limiter initialized", max_requests=max_requests, per_seconds=per_seconds)

    def _evict(self, now: float) -> None:
        horizon = now - self.per_seconds
        while self._window and self._window[0] < horizon:
            self._window.popleft()

    async def acquire(self) -> float:
        """
        Wait until the window has capacity and record one dispatch.

        Returns:
            Seconds spent waiting for capacity
        """
        waited = 0.0
        async with self._lock:
            while True:
                now = self._clock()
                self._evict(now)
                if len(self._window) < self.max_requests:
                    self._window.append(now)
                    break

                delay = max(self._window[0] + self.per_seconds - now, MIN_SLEEP_SECONDS)
                logger.debug("Request window full, waiting", delay=round(delay, 3), in_window=len(self._window))
                await asyncio.sleep(delay)
                waited += delay

        self._total_acquired += 1
        self._total_wait += waited
        return waited

    def in_window(self) -> int:
        """Dispatches currently counted in the trailing window."""
        self._evict(self._clock())
        return len(self._window)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "max_requests": self.max_requests,
            "per_seconds": self.per_seconds,
            "in_window": self.in_window(),
            "total_acquired": self._total_acquired,
            "total_wait_seconds": round(self._total_wait, 3),
        }
