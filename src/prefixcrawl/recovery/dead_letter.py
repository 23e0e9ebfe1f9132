"""
Dead-letter set for abandoned prefixes.

A prefix whose query failed for good cannot be told apart from a genuine
leaf by looking at the results alone, and its whole subtree is missing from
the output. Recording it here keeps that loss visible: the set is written to
disk and listed in the final report.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional

import structlog

from prefixcrawl.observability import metrics
from prefixcrawl.utils.atomic import atomic_write_json

if TYPE_CHECKING:
    from prefixcrawl.crawler.frontier import PrefixTask

logger = structlog.get_logger(__name__)


@dataclass
class AbandonedPrefix:
    """A prefix that reached a terminal failure."""

    prefix: str
    outcome: str
    error: str
    attempts: int = 0
    transient_failures: int = 0
    rate_limited: int = 0
    abandoned_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prefix": self.prefix,
            "outcome": self.outcome,
            "error": self.error,
            "attempts": self.attempts,
            "transientFailures": self.transient_failures,
            "rateLimited": self.rate_limited,
            "abandonedAt": self.abandoned_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AbandonedPrefix:
        return cls(
            prefix=data["prefix"],
            outcome=data["outcome"],
            error=data["error"],
            attempts=data.get("attempts", 0),
            transient_failures=data.get("transientFailures", 0),
            rate_limited=data.get("rateLimited", 0),
            abandoned_at=datetime.fromisoformat(data["abandonedAt"]),
        )


class DeadLetterSet:
    """Prefixes abandoned during a run, keyed by prefix."""

    def __init__(self) -> None:
        self._entries: Dict[str, AbandonedPrefix] = {}

    def add(self, task: PrefixTask, outcome: str, error: str) -> AbandonedPrefix:
        entry = AbandonedPrefix(
            prefix=task.prefix,
            outcome=outcome,
            error=error,
            attempts=task.attempts,
            transient_failures=task.transient_failures,
            rate_limited=task.rate_limited,
        )
        self._entries[task.prefix] = entry
        metrics.increment("abandoned_prefixes_total", labels={"outcome": outcome})
        logger.warning(
            "Prefix abandoned, its subtree will be missing from the results",
            prefix=task.prefix,
            outcome=outcome,
            error=error,
            attempts=task.attempts,
        )
        return entry

    def __contains__(self, prefix: object) -> bool:
        return prefix in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AbandonedPrefix]:
        return iter(self._entries.values())

    def get(self, prefix: str) -> Optional[AbandonedPrefix]:
        return self._entries.get(prefix)

    def prefixes(self) -> List[str]:
        return list(self._entries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAbandoned": len(self._entries),
            "prefixes": [entry.to_dict() for entry in self._entries.values()],
        }

    def write(self, path: Path) -> Path:
        atomic_write_json(path, self.to_dict())
        logger.info("Dead-letter set written", path=str(path), abandoned=len(self._entries))
        return Path(path)

    @classmethod
    def load(cls, path: Path) -> DeadLetterSet:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        dead_letters = cls()
        for item in data.get("prefixes", []):
            entry = AbandonedPrefix.from_dict(item)
            dead_letters._entries[entry.prefix] = entry
        return dead_letters
