"""
Defines Prometheus metrics for the exploration engine.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Gauge as _OrigGauge
from prometheus_client import Histogram as _OrigHistogram
from prometheus_client import start_http_server

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# Reloading this module (as the test suite does) must not raise duplicate
# registration errors, so an existing collector with the same name is reused.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[override]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing  # type: ignore[return-value]

        try:
            return metric_cls(name, documentation, *args, **kwargs)  # type: ignore[call-arg]
        except ValueError:
            # Registration lost the race, fall back to the now-existing collector.
            return _PROM_REGISTRY._names_to_collectors[name]  # type: ignore[return-value]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)  # type: ignore[assignment]
Gauge = _duplicate_safe_factory(_OrigGauge)  # type: ignore[assignment]
Histogram = _duplicate_safe_factory(_OrigHistogram)  # type: ignore[assignment]


def _create_metrics() -> Dict[str, Any]:
    return {
        "requests_total": Counter(
            "prefixcrawl_requests_total",
            "Total number of dispatched prefix queries by outcome",
            ["outcome"],
        ),
        "request_latency_seconds": Histogram(
            "prefixcrawl_request_latency_seconds",
            "Time taken by a single prefix query",
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
        ),
        "in_flight_requests": Gauge(
            "prefixcrawl_in_flight_requests",
            "Number of prefix queries currently in flight",
        ),
        "concurrency_limit": Gauge(
            "prefixcrawl_concurrency_limit",
            "Current concurrency bound chosen by the AIMD controller",
        ),
        "backlog": Gauge(
            "prefixcrawl_backlog",
            "Queued plus in-flight prefix tasks at the last sample",
        ),
        "discovered_names": Gauge(
            "prefixcrawl_discovered_names",
            "Number of unique names discovered so far",
        ),
        "abandoned_prefixes_total": Counter(
            "prefixcrawl_abandoned_prefixes_total",
            "Prefixes moved to the dead-letter set",
            ["outcome"],
        ),
        "snapshots_total": Counter(
            "prefixcrawl_snapshots_total",
            "Snapshots written to disk",
            ["result"],
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()


def increment(name: str, value: float = 1.0, labels: Optional[Dict[str, Any]] = None) -> None:
    """Increment a counter metric."""
    if name in METRICS:
        metric = METRICS[name]
        if labels is not None:
            metric.labels(**labels).inc(value)
        else:
            metric.inc(value)


def gauge(name: str, value: float) -> None:
    """Set a gauge metric."""
    if name in METRICS:
        METRICS[name].set(value)


def histogram(name: str, value: float) -> None:
    """Observe a histogram metric."""
    if name in METRICS:
        METRICS[name].observe(value)


def start_metrics_server(port: int) -> None:
    """Expose the registry over HTTP for Prometheus to scrape."""
    logger.info("Starting Prometheus metrics server", port=port)
    start_http_server(port)
