"""Test helpers for prefixcrawl."""

from .metric_delta import histogram_observes, metric_delta, sample_value
from .stub_client import RecordingClient, ScriptedClient, TrieClient

__all__ = [
    "RecordingClient",
    "ScriptedClient",
    "TrieClient",
    "histogram_observes",
    "metric_delta",
    "sample_value",
]
