"""
Retry and backoff decisions for settled queries.

Rate limiting is the expected throttling signal, so a 429 is retried after a
fixed cooldown for as long as it keeps happening. Transient errors are
retried with exponential backoff until ``max_retries`` consecutive failures
have been used up; a 429 in between ends the streak. Every
delay carries its own random jitter so tasks that failed together do not
retry together.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from prefixcrawl.config.config import RetryConfig
from prefixcrawl.crawler.frontier import PrefixTask
from prefixcrawl.protocols import FatalError, QueryOutcome, RateLimited, Success, TransientError

logger = structlog.get_logger(__name__)


class RetryAction(Enum):
    RECORD = "record"
    RETRY = "retry"
    ABANDON = "abandon"


@dataclass(frozen=True)
class RetryDecision:
    action: RetryAction
    delay: float = 0.0
    reason: Optional[str] = None


class RetryPolicy:
    """Maps an outcome for a task onto record / retry-after-delay / abandon."""

    def __init__(self, config: RetryConfig, *, rng: Optional[random.Random] = None):
        self.config = config
        self._rng = rng or random.Random()

    def jitter(self) -> float:
        if self.config.jitter_seconds <= 0:
            return 0.0
        return self._rng.uniform(0.0, self.config.jitter_seconds)

    def backoff_delay(self, failures: int) -> float:
        """Delay before the retry following the ``failures``-th consecutive transient error."""
        return self.config.base_delay_seconds * (2**failures) + self.jitter()

    def cooldown_delay(self, retry_after: Optional[float] = None) -> float:
        base = self.config.rate_limit_cooldown_seconds
        if retry_after is not None:
            base = max(base, retry_after)
        return base + self.jitter()

    def decide(self, task: PrefixTask, outcome: QueryOutcome) -> RetryDecision:
        """
        Classify ``outcome`` for ``task``, updating the task's retry counters.

        Returns:
            RECORD for a success, RETRY with the delay to wait, or ABANDON
            once the transient budget is spent or the error is fatal.
        """
        if isinstance(outcome, Success):
            return RetryDecision(RetryAction.RECORD)

        if isinstance(outcome, RateLimited):
            task.rate_limited += 1
            task.transient_failures = 0
            delay = self.cooldown_delay(outcome.retry_after)
            logger.info(
                "Rate limited, retrying after cooldown",
                prefix=task.prefix,
                rate_limited=task.rate_limited,
                delay=round(delay, 3),
            )
            return RetryDecision(RetryAction.RETRY, delay=delay, reason="rate_limited")

        if isinstance(outcome, TransientError):
            task.transient_failures += 1
            if task.transient_failures > self.config.max_retries:
                return RetryDecision(
                    RetryAction.ABANDON,
                    reason=f"retry budget exhausted after {task.attempts} attempts: {outcome.error}",
                )
            delay = self.backoff_delay(task.transient_failures)
            logger.info(
                "Transient error, retrying with backoff",
                prefix=task.prefix,
                attempt=task.attempts,
                error=outcome.error,
                delay=round(delay, 3),
            )
            return RetryDecision(RetryAction.RETRY, delay=delay, reason=outcome.error)

        if isinstance(outcome, FatalError):
            return RetryDecision(RetryAction.ABANDON, reason=outcome.error)

        raise TypeError(f"Unknown query outcome: {outcome!r}")
