"""
Shared test configuration for prefixcrawl.

Provides fast configurations (no pauses, tiny backoff, generous rate window)
and the asyncio task cleanup used by every async test.
"""

# Standard library imports
import asyncio
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Dict

# Third-party imports
import pytest
import pytest_asyncio

# Local imports
from prefixcrawl.config import (
    Config,
    ConcurrencyConfig,
    EndpointConfig,
    ExplorationConfig,
    RateLimiterConfig,
    RetryConfig,
    SnapshotConfig,
)

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across modules")
    config.addinivalue_line("markers", "slow: Tests that take more than a few seconds")


# ============================================================================
# Core Test Fixtures
# ============================================================================


@pytest_asyncio.fixture(autouse=True)
async def cleanup_tasks() -> AsyncGenerator[None, None]:
    """
    Cancel any asyncio task a test leaves behind so a failing test cannot
    hang the ones after it.
    """
    tasks_before = asyncio.all_tasks()
    yield
    new_tasks = asyncio.all_tasks() - tasks_before

    for task in new_tasks:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """
    Factory for configurations tuned for tests.

    Keyword arguments are merged into the corresponding sections, e.g.
    ``make_config(exploration={"alphabet": "ab", "page_cap": 2})``.
    """

    def _make(**sections: Dict[str, Any]) -> Config:
        defaults: Dict[str, Dict[str, Any]] = {
            "endpoint": {"url": "http://autocomplete.test/v1/autocomplete", "timeout": 1.0},
            "exploration": {"alphabet": "ab", "page_cap": 2, "worker_pause_seconds": 0.0},
            "rate_limiter": {"max_requests": 1000, "per_seconds": 1.0},
            "concurrency": {
                "initial": 4,
                "minimum": 1,
                "maximum": 8,
                "backlog_high": 100,
                "backlog_low": 2,
                "sample_interval_seconds": 0.05,
            },
            "retry": {
                "base_delay_seconds": 0.001,
                "max_retries": 5,
                "rate_limit_cooldown_seconds": 0.005,
                "jitter_seconds": 0.0,
            },
            "snapshot": {
                "path": tmp_path / "snapshot.json",
                "names_only_path": tmp_path / "names_only.json",
                "dead_letter_path": tmp_path / "abandoned.json",
                "increment": 500,
            },
        }
        for name, overrides in sections.items():
            defaults[name].update(overrides)

        return Config(
            endpoint=EndpointConfig(**defaults["endpoint"]),
            exploration=ExplorationConfig(**defaults["exploration"]),
            rate_limiter=RateLimiterConfig(**defaults["rate_limiter"]),
            concurrency=ConcurrencyConfig(**defaults["concurrency"]),
            retry=RetryConfig(**defaults["retry"]),
            snapshot=SnapshotConfig(**defaults["snapshot"]),
        )

    return _make


@pytest.fixture
def fast_config(make_config) -> Config:
    """Default fast configuration: alphabet {a, b}, page cap 2."""
    return make_config()
