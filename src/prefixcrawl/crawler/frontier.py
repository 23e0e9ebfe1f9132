"""
Deduplicated work queue of prefixes.

A prefix is admitted to the visited set at enqueue time, so each prefix is
dispatched at most once per run regardless of how many parents expand into
it. Retries never go back through ``enqueue``; they are re-queued with
``requeue`` after a timer fires, which keeps the task counted as
outstanding for the whole delay.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class PrefixTask:
    """A prefix bound to pending execution."""

    prefix: str
    attempts: int = 0
    transient_failures: int = 0
    rate_limited: int = 0


class Frontier:
    """FIFO queue of prefix tasks backed by a monotonically growing visited set."""

    def __init__(self) -> None:
        self._visited: Set[str] = set()
        self._queue: asyncio.Queue[PrefixTask] = asyncio.Queue()
        self._timers: Set[asyncio.TimerHandle] = set()
        self._delayed = 0
        self._outstanding = 0
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def enqueue(self, prefix: str) -> bool:
        """Schedule ``prefix`` unless it was ever scheduled before."""
        if prefix in self._visited:
            return False
        self._visited.add(prefix)
        self._outstanding += 1
        self._idle.clear()
        self._queue.put_nowait(PrefixTask(prefix=prefix))
        return True

    def enqueue_many(self, prefixes: Iterable[str]) -> List[str]:
        return [prefix for prefix in prefixes if self.enqueue(prefix)]

    def expand(self, prefix: str, alphabet: Iterable[str]) -> List[str]:
        """
        Enqueue one child per alphabet character, in alphabet order.

        Returns:
            The children that were newly scheduled; already visited children
            are skipped.
        """
        children = self.enqueue_many(prefix + char for char in alphabet)
        logger.debug("Expanded prefix", prefix=prefix, children=len(children))
        return children

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    async def get(self) -> PrefixTask:
        return await self._queue.get()

    def requeue(self, task: PrefixTask, delay: float) -> None:
        """Put ``task`` back on the queue after ``delay`` seconds."""
        if delay <= 0:
            self._queue.put_nowait(task)
            return

        loop = asyncio.get_running_loop()
        self._delayed += 1
        handle: Optional[asyncio.TimerHandle] = None

        def _release() -> None:
            self._delayed -= 1
            self._timers.discard(handle)  # type: ignore[arg-type]
            self._queue.put_nowait(task)

        handle = loop.call_later(delay, _release)
        self._timers.add(handle)

    def complete(self, task: PrefixTask) -> None:
        """Mark ``task`` as finished for good (recorded or abandoned)."""
        self._outstanding -= 1
        if self._outstanding <= 0:
            self._outstanding = 0
            self._idle.set()

    async def join(self) -> None:
        """Wait until no task is queued, delayed or in flight."""
        await self._idle.wait()

    def close(self) -> None:
        """Cancel retry timers that have not fired yet."""
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        self._delayed = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def queued(self) -> int:
        return self._queue.qsize()

    @property
    def delayed(self) -> int:
        return self._delayed

    @property
    def outstanding(self) -> int:
        return self._outstanding

    @property
    def visited(self) -> int:
        return len(self._visited)

    def is_visited(self, prefix: str) -> bool:
        return prefix in self._visited

    def is_idle(self) -> bool:
        return self._idle.is_set()
