"""
Result aggregation and snapshotting.

The aggregator is the only owner of the discovered-name set and of the
request counter. Snapshots are full overwrites of
``{totalRequests, totalNames, names, timestamp}``; successive snapshots are
serialized through a lock so each one is a superset of the previous.
All snapshot writes go through one writer thread, so a write that outlived
its timeout still lands before any later one.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import structlog

from prefixcrawl.config.config import SnapshotConfig
from prefixcrawl.exceptions import SnapshotError
from prefixcrawl.observability import metrics
from prefixcrawl.utils.atomic import atomic_json_dump, atomic_write_json

logger = structlog.get_logger(__name__)


class ResultAggregator:
    """Deduplicated, insertion-ordered set of discovered names plus counters."""

    def __init__(self, config: SnapshotConfig):
        self.config = config
        # dict keys give an insertion-ordered set
        self._names: Dict[str, None] = {}
        self._total_requests = 0
        self._last_snapshot_size = 0
        self._snapshots_written = 0
        self._lock = asyncio.Lock()
        # one worker keeps snapshot writes in submission order
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="snapshot-writer")

    @property
    def total_requests(self) -> int:
        return self._total_requests

    @property
    def total_names(self) -> int:
        return len(self._names)

    @property
    def names(self) -> List[str]:
        return list(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def count_request(self) -> None:
        """Count one dispatch attempt that reached the network."""
        self._total_requests += 1

    def record(self, items: Iterable[str]) -> int:
        """Add ``items`` to the discovered set; returns how many were new."""
        before = len(self._names)
        for item in items:
            self._names.setdefault(item, None)
        added = len(self._names) - before
        if added:
            metrics.gauge("discovered_names", len(self._names))
        return added

    def build_snapshot(self) -> Dict[str, Any]:
        return {
            "totalRequests": self._total_requests,
            "totalNames": len(self._names),
            "names": list(self._names),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def maybe_snapshot(self) -> bool:
        """Persist when the set grew by at least ``increment`` since the last snapshot."""
        if len(self._names) < self._last_snapshot_size + self.config.increment:
            return False

        self._last_snapshot_size = len(self._names)
        async with self._lock:
            data = self.build_snapshot()
            saved = await atomic_json_dump(
                data,
                self.config.path,
                timeout=self.config.write_timeout_seconds,
                executor=self._writer,
            )

        metrics.increment("snapshots_total", labels={"result": "ok" if saved else "failed"})
        if saved:
            self._snapshots_written += 1
            logger.info("Progress saved", names=data["totalNames"], requests=data["totalRequests"])
        return saved

    async def snapshot(self) -> Dict[str, Any]:
        """
        Unconditionally persist the current state.

        Raises:
            SnapshotError: If the snapshot file cannot be written
        """
        async with self._lock:
            data = self.build_snapshot()
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(self._writer, atomic_write_json, self.config.path, data)
            except (OSError, ValueError) as e:
                metrics.increment("snapshots_total", labels={"result": "failed"})
                raise SnapshotError(f"Failed to write snapshot to {self.config.path}: {e}") from e

        self._last_snapshot_size = data["totalNames"]
        self._snapshots_written += 1
        metrics.increment("snapshots_total", labels={"result": "ok"})
        logger.info("Snapshot written", path=str(self.config.path), names=data["totalNames"])
        return data

    def write_names_only(self, path: Optional[Path] = None) -> Optional[Path]:
        """Write the bare list of names, if a names-only path is configured."""
        target = path or self.config.names_only_path
        if target is None:
            return None
        atomic_write_json(target, list(self._names))
        logger.info("Names written", path=str(target), names=len(self._names))
        return Path(target)

    def close(self) -> None:
        """Release the writer thread once queued writes have finished."""
        self._writer.shutdown(wait=True)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_requests": self._total_requests,
            "total_names": len(self._names),
            "snapshots_written": self._snapshots_written,
            "last_snapshot_size": self._last_snapshot_size,
        }
