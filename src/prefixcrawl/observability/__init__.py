"""Logging and metrics for prefixcrawl."""

from __future__ import annotations

from .logging import configure_logging
from .metrics import METRICS, gauge, histogram, increment, start_metrics_server

__all__ = ["configure_logging", "METRICS", "gauge", "histogram", "increment", "start_metrics_server"]
