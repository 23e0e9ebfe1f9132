"""
Adaptive concurrency control.

One controller owns the concurrency bound and exposes a single ``adjust``
entry point. Per-request outcomes (success / 429) and periodic backlog samples
are two event sources feeding the same additive-increase /
multiplicative-decrease law, so they can never race on the value.
"""

from __future__ import annotations

import asyncio
import math
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

import structlog

from prefixcrawl.config.config import ConcurrencyConfig
from prefixcrawl.observability import metrics

logger = structlog.get_logger(__name__)


class ControlSignal(Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    BACKLOG_HIGH = "backlog_high"
    BACKLOG_LOW = "backlog_low"


@dataclass
class ConcurrencyState:
    current: int
    minimum: int
    maximum: int

    def clamp(self, value: int) -> int:
        return max(self.minimum, min(self.maximum, value))


class ConcurrencyController:
    """AIMD controller for the number of simultaneously in-flight queries."""

    def __init__(self, config: ConcurrencyConfig):
        self.config = config
        self._state = ConcurrencyState(
            current=config.initial,
            minimum=config.minimum,
            maximum=config.maximum,
        )
        self._lock = threading.Lock()
        self._listeners: List[Callable[[int], None]] = []
        self._adjustments: Dict[ControlSignal, int] = {signal: 0 for signal in ControlSignal}

        metrics.gauge("concurrency_limit", self._state.current)

    @property
    def current(self) -> int:
        return self._state.current

    @property
    def state(self) -> ConcurrencyState:
        with self._lock:
            return ConcurrencyState(self._state.current, self._state.minimum, self._state.maximum)

    def add_listener(self, listener: Callable[[int], None]) -> None:
        """Register a callback invoked with the new bound whenever it changes."""
        self._listeners.append(listener)
        listener(self._state.current)

    def adjust(self, signal: ControlSignal) -> int:
        """
        Apply one feedback signal and return the resulting bound.

        SUCCESS and BACKLOG_LOW add ``increase_step``; RATE_LIMITED and
        BACKLOG_HIGH multiply by ``decrease_factor``. The result is always
        clamped to ``[minimum, maximum]``.
        """
        with self._lock:
            previous = self._state.current
            if signal in (ControlSignal.SUCCESS, ControlSignal.BACKLOG_LOW):
                proposed = previous + self.config.increase_step
            else:
                proposed = math.floor(previous * self.config.decrease_factor)
            self._state.current = self._state.clamp(proposed)
            current = self._state.current
            self._adjustments[signal] += 1

        if current != previous:
            logger.debug("Adjusted concurrency", signal=signal.value, previous=previous, current=current)
            metrics.gauge("concurrency_limit", current)
            for listener in self._listeners:
                listener(current)
        return current

    def observe_backlog(self, backlog: int) -> Optional[ControlSignal]:
        """Translate a backlog sample into a control signal and apply it."""
        metrics.gauge("backlog", backlog)
        if backlog > self.config.backlog_high:
            signal = ControlSignal.BACKLOG_HIGH
        elif backlog < self.config.backlog_low and self._state.current < self._state.maximum:
            signal = ControlSignal.BACKLOG_LOW
        else:
            return None
        self.adjust(signal)
        return signal

    async def run_backlog_monitor(self, backlog_fn: Callable[[], int]) -> None:
        """Sample the backlog every ``sample_interval_seconds`` until cancelled."""
        interval = self.config.sample_interval_seconds
        while True:
            await asyncio.sleep(interval)
            backlog = backlog_fn()
            signal = self.observe_backlog(backlog)
            logger.info(
                "Backlog check",
                backlog=backlog,
                concurrency=self._state.current,
                action=signal.value if signal else "hold",
            )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "current": self._state.current,
            "minimum": self._state.minimum,
            "maximum": self._state.maximum,
            "adjustments": {signal.value: count for signal, count in self._adjustments.items()},
        }


class AdaptiveSemaphore:
    """
    Semaphore whose limit can be changed while tasks hold or wait for slots.

    Lowering the limit never preempts holders; it only stops new grants until
    enough slots are released. Raising it wakes waiters immediately.
    """

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._in_use = 0
        self._waiters: Deque[asyncio.Future[None]] = deque()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def set_limit(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._wake_waiters()

    async def acquire(self) -> None:
        if self._in_use < self._limit and not self._waiters:
            self._in_use += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was granted just before cancellation; hand it back.
                self.release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        if self._in_use <= 0:
            raise RuntimeError("AdaptiveSemaphore released too many times")
        self._in_use -= 1
        self._wake_waiters()

    def _wake_waiters(self) -> None:
        while self._waiters and self._in_use < self._limit:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            self._in_use += 1
            waiter.set_result(None)

    async def __aenter__(self) -> "AdaptiveSemaphore":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
