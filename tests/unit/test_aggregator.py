"""Unit tests for result aggregation and snapshots."""

import asyncio
import json
import time

import pytest
from prefixcrawl.config import SnapshotConfig
from prefixcrawl.exceptions import SnapshotError
from prefixcrawl.storage import ResultAggregator
from prefixcrawl.storage import aggregator as aggregator_module
from prefixcrawl.utils import atomic


@pytest.fixture
def snapshot_config(tmp_path) -> SnapshotConfig:
    return SnapshotConfig(
        path=tmp_path / "snapshot.json",
        names_only_path=tmp_path / "names_only.json",
        dead_letter_path=None,
        increment=3,
    )


class TestRecording:
    def test_record_is_idempotent(self, snapshot_config):
        aggregator = ResultAggregator(snapshot_config)

        assert aggregator.record(["aa", "ab"]) == 2
        assert aggregator.record(["ab", "aa"]) == 0
        assert aggregator.record(["ac", "aa"]) == 1

        assert aggregator.names == ["aa", "ab", "ac"]
        assert aggregator.total_names == 3
        assert "ab" in aggregator

    def test_request_counter(self, snapshot_config):
        aggregator = ResultAggregator(snapshot_config)
        for _ in range(4):
            aggregator.count_request()
        assert aggregator.total_requests == 4

    def test_snapshot_payload_shape(self, snapshot_config):
        aggregator = ResultAggregator(snapshot_config)
        aggregator.count_request()
        aggregator.record(["a1"])

        data = aggregator.build_snapshot()

        assert data["totalRequests"] == 1
        assert data["totalNames"] == 1
        assert data["names"] == ["a1"]
        assert "timestamp" in data


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_maybe_snapshot_waits_for_increment(self, snapshot_config):
        aggregator = ResultAggregator(snapshot_config)

        aggregator.record(["a", "b"])
        assert await aggregator.maybe_snapshot() is False
        assert not snapshot_config.path.exists()

        aggregator.record(["c"])
        assert await aggregator.maybe_snapshot() is True
        data = json.loads(snapshot_config.path.read_text(encoding="utf-8"))
        assert data["totalNames"] == 3

        # growth since the last snapshot is counted from that snapshot
        aggregator.record(["d", "e"])
        assert await aggregator.maybe_snapshot() is False
        aggregator.record(["f"])
        assert await aggregator.maybe_snapshot() is True

    @pytest.mark.asyncio
    async def test_snapshots_are_monotonic(self, snapshot_config):
        aggregator = ResultAggregator(snapshot_config)
        previous = set()
        for batch in (["a", "b", "c"], ["d", "e", "f"], ["a", "g", "h", "i"]):
            aggregator.record(batch)
            await aggregator.maybe_snapshot()
            names = set(json.loads(snapshot_config.path.read_text(encoding="utf-8"))["names"])
            assert previous <= names
            previous = names

    @pytest.mark.asyncio
    async def test_final_snapshot_is_unconditional(self, snapshot_config):
        aggregator = ResultAggregator(snapshot_config)
        aggregator.count_request()

        data = await aggregator.snapshot()

        on_disk = json.loads(snapshot_config.path.read_text(encoding="utf-8"))
        assert on_disk["totalNames"] == 0
        assert on_disk["totalRequests"] == 1
        assert data["names"] == []

    @pytest.mark.asyncio
    async def test_final_snapshot_failure_raises(self, tmp_path):
        target = tmp_path / "taken"
        target.mkdir()
        # a non-empty directory cannot be replaced by a file
        (target / "keep").write_text("x")
        aggregator = ResultAggregator(SnapshotConfig(path=target, names_only_path=None, dead_letter_path=None))

        with pytest.raises(SnapshotError):
            await aggregator.snapshot()

    @pytest.mark.asyncio
    async def test_periodic_snapshot_failure_is_reported(self, tmp_path):
        target = tmp_path / "taken"
        target.mkdir()
        (target / "keep").write_text("x")
        aggregator = ResultAggregator(
            SnapshotConfig(path=target, names_only_path=None, dead_letter_path=None, increment=1)
        )
        aggregator.record(["a"])

        assert await aggregator.maybe_snapshot() is False


def test_write_names_only(snapshot_config):
    aggregator = ResultAggregator(snapshot_config)
    aggregator.record(["b", "a"])

    path = aggregator.write_names_only()

    assert path == snapshot_config.names_only_path
    assert json.loads(path.read_text(encoding="utf-8")) == ["b", "a"]


def test_write_names_only_disabled(tmp_path):
    aggregator = ResultAggregator(SnapshotConfig(path=tmp_path / "s.json", names_only_path=None))
    assert aggregator.write_names_only() is None


@pytest.mark.asyncio
async def test_late_periodic_write_never_overwrites_final_snapshot(tmp_path, monkeypatch):
    real_write = atomic.atomic_write_json
    calls = []

    def slow_first_write(path, data):
        calls.append(data["totalNames"])
        if len(calls) == 1:
            time.sleep(0.3)
        real_write(path, data)

    monkeypatch.setattr(atomic, "atomic_write_json", slow_first_write)
    monkeypatch.setattr(aggregator_module, "atomic_write_json", slow_first_write)

    config = SnapshotConfig(
        path=tmp_path / "snapshot.json",
        names_only_path=None,
        dead_letter_path=None,
        increment=1,
        write_timeout_seconds=0.05,
    )
    aggregator = ResultAggregator(config)
    try:
        aggregator.record(["a", "b"])
        assert await aggregator.maybe_snapshot() is False

        aggregator.record(["c", "d", "e"])
        await aggregator.snapshot()

        assert json.loads(config.path.read_text(encoding="utf-8"))["totalNames"] == 5
        await asyncio.sleep(0.4)
        assert json.loads(config.path.read_text(encoding="utf-8"))["totalNames"] == 5
        assert calls == [2, 5]
    finally:
        aggregator.close()
