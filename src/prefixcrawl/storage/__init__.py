"""Discovered-name aggregation and snapshot persistence."""

from .aggregator import ResultAggregator

__all__ = ["ResultAggregator"]
