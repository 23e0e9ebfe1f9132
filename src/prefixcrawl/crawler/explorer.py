"""
Adaptive prefix explorer.

Walks the implicit trie behind an autocomplete endpoint: every prefix whose
query returns a full page (``page_cap`` results) is assumed to hide more
matches and is expanded with one child per alphabet character, while a
shorter page marks a leaf.

The explorer owns every piece of shared state (frontier, aggregator,
dead-letter set, controller, limiter) and drives a fixed pool of worker
coroutines. The effective parallelism is the controller's current bound,
enforced by the dispatcher's semaphore, not the pool size.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

import structlog

from prefixcrawl.config.config import Config
from prefixcrawl.crawler.concurrency import AdaptiveSemaphore, ConcurrencyController, ControlSignal
from prefixcrawl.crawler.dispatcher import Dispatcher
from prefixcrawl.crawler.frontier import Frontier, PrefixTask
from prefixcrawl.crawler.rate_limiter import SlidingWindowRateLimiter
from prefixcrawl.crawler.retry import RetryAction, RetryPolicy
from prefixcrawl.protocols import QueryClient, RateLimited, Success
from prefixcrawl.recovery.dead_letter import AbandonedPrefix, DeadLetterSet
from prefixcrawl.storage.aggregator import ResultAggregator

logger = structlog.get_logger(__name__)


@dataclass
class ExplorationReport:
    """Final outcome of a run."""

    total_requests: int
    total_names: int
    names: List[str]
    abandoned: List[AbandonedPrefix] = field(default_factory=list)
    prefixes_explored: int = 0
    rate_limited_retries: int = 0
    transient_retries: int = 0
    elapsed_seconds: float = 0.0

    @property
    def complete(self) -> bool:
        """True when no subtree was lost to an abandoned prefix."""
        return not self.abandoned

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRequests": self.total_requests,
            "totalNames": self.total_names,
            "names": self.names,
            "abandoned": [entry.to_dict() for entry in self.abandoned],
            "prefixesExplored": self.prefixes_explored,
            "rateLimitedRetries": self.rate_limited_retries,
            "transientRetries": self.transient_retries,
            "timeElapsedSeconds": round(self.elapsed_seconds, 2),
        }


class PrefixExplorer:
    """
    Recursively queries an autocomplete endpoint until the frontier drains.

    Args:
        config: Full configuration
        client: Object implementing ``QueryClient``
        rng: Random source for jitter (inject a seeded one for reproducible runs)
    """

    def __init__(self, config: Config, client: QueryClient, *, rng: Optional[random.Random] = None):
        self.config = config
        self.client = client
        self._rng = rng or random.Random()

        self.frontier = Frontier()
        self.aggregator = ResultAggregator(config.snapshot)
        self.dead_letters = DeadLetterSet()
        self.controller = ConcurrencyController(config.concurrency)
        self.semaphore = AdaptiveSemaphore(config.concurrency.initial)
        self.controller.add_listener(self.semaphore.set_limit)
        self.rate_limiter = SlidingWindowRateLimiter(
            config.rate_limiter.max_requests,
            config.rate_limiter.per_seconds,
        )
        self.dispatcher = Dispatcher(
            client,
            self.rate_limiter,
            self.semaphore,
            on_attempt=self.aggregator.count_request,
        )
        self.retry_policy = RetryPolicy(config.retry, rng=self._rng)

        self._rate_limited_retries = 0
        self._transient_retries = 0
        self._prefixes_completed = 0
        self._busy_workers = 0

        logger.info(
            "Prefix explorer initialized",
            endpoint=config.endpoint.url,
            alphabet_size=len(config.exploration.alphabet),
            page_cap=config.exploration.page_cap,
            concurrency=config.concurrency.initial,
            max_requests=config.rate_limiter.max_requests,
            per_seconds=config.rate_limiter.per_seconds,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def backlog(self) -> int:
        """Queued tasks plus tasks currently held by workers."""
        return self.frontier.queued + self._busy_workers

    async def run(self, seeds: Optional[Iterable[str]] = None) -> ExplorationReport:
        """
        Explore from ``seeds`` (default: one prefix per alphabet character)
        until no task is queued, delayed or in flight.

        Returns:
            ExplorationReport with every discovered name and abandoned prefix
        """
        start = time.monotonic()
        initial = list(seeds) if seeds is not None else self.config.exploration.initial_prefixes()

        structlog.contextvars.bind_contextvars(run_id=uuid4().hex[:12])
        logger.info("Starting exploration", seeds=len(initial))

        self.frontier.enqueue_many(initial)

        monitor = asyncio.create_task(self.controller.run_backlog_monitor(self.backlog), name="backlog-monitor")
        workers = [
            asyncio.create_task(self._worker(), name=f"prefix-worker-{i}")
            for i in range(self.config.concurrency.maximum)
        ]

        try:
            await self.frontier.join()
        finally:
            for task in [monitor, *workers]:
                task.cancel()
            await asyncio.gather(monitor, *workers, return_exceptions=True)
            self.frontier.close()

        try:
            await self.aggregator.snapshot()
            self._write_outputs()
        finally:
            self.aggregator.close()

        report = ExplorationReport(
            total_requests=self.aggregator.total_requests,
            total_names=self.aggregator.total_names,
            names=self.aggregator.names,
            abandoned=list(self.dead_letters),
            prefixes_explored=self._prefixes_completed,
            rate_limited_retries=self._rate_limited_retries,
            transient_retries=self._transient_retries,
            elapsed_seconds=time.monotonic() - start,
        )
        logger.info(
            "Exploration complete",
            total_requests=report.total_requests,
            total_names=report.total_names,
            abandoned=len(report.abandoned),
            elapsed_seconds=round(report.elapsed_seconds, 2),
        )
        structlog.contextvars.unbind_contextvars("run_id")
        return report

    def get_stats(self) -> Dict[str, Any]:
        return {
            "frontier": {
                "visited": self.frontier.visited,
                "queued": self.frontier.queued,
                "delayed": self.frontier.delayed,
                "outstanding": self.frontier.outstanding,
            },
            "dispatcher": self.dispatcher.get_stats(),
            "concurrency": self.controller.get_stats(),
            "aggregator": self.aggregator.get_stats(),
            "abandoned": len(self.dead_letters),
            "rate_limited_retries": self._rate_limited_retries,
            "transient_retries": self._transient_retries,
        }

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker(self) -> None:
        pause = self.config.exploration.worker_pause_seconds
        while True:
            task = await self.frontier.get()
            self._busy_workers += 1
            try:
                await self._process(task)
            except Exception as e:
                logger.exception("Unexpected error while processing prefix", prefix=task.prefix)
                self.dead_letters.add(task, outcome="internal", error=f"{type(e).__name__}: {e}")
                self.frontier.complete(task)
            finally:
                self._busy_workers -= 1

            if pause > 0:
                await asyncio.sleep(pause + self.retry_policy.jitter())

    async def _process(self, task: PrefixTask) -> None:
        outcome = await self.dispatcher.submit(task)
        decision = self.retry_policy.decide(task, outcome)

        if isinstance(outcome, Success):
            self.controller.adjust(ControlSignal.SUCCESS)
            await self._handle_success(task, outcome.results)
            self._prefixes_completed += 1
            self.frontier.complete(task)
            return

        if decision.action is RetryAction.RETRY:
            if isinstance(outcome, RateLimited):
                self.controller.adjust(ControlSignal.RATE_LIMITED)
                self._rate_limited_retries += 1
            else:
                self._transient_retries += 1
            self.frontier.requeue(task, decision.delay)
            return

        self.dead_letters.add(task, outcome=outcome.kind.value, error=decision.reason or "")
        self.frontier.complete(task)

    async def _handle_success(self, task: PrefixTask, results: List[str]) -> None:
        self.aggregator.record(results)
        await self.aggregator.maybe_snapshot()

        # A full page means the server truncated the match list.
        if len(results) >= self.config.exploration.page_cap:
            self.frontier.expand(task.prefix, self.config.exploration.alphabet)

    def _write_outputs(self) -> None:
        snapshot_config = self.config.snapshot
        if snapshot_config.names_only_path is not None:
            self.aggregator.write_names_only(snapshot_config.names_only_path)
        if snapshot_config.dead_letter_path is not None:
            self.dead_letters.write(Path(snapshot_config.dead_letter_path))
