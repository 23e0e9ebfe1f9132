"""Configuration models for prefixcrawl."""

from .config import (
    Config,
    ConcurrencyConfig,
    EndpointConfig,
    ExplorationConfig,
    MonitoringConfig,
    RateLimiterConfig,
    RetryConfig,
    SnapshotConfig,
    find_config_file,
)

__all__ = [
    "Config",
    "ConcurrencyConfig",
    "EndpointConfig",
    "ExplorationConfig",
    "MonitoringConfig",
    "RateLimiterConfig",
    "RetryConfig",
    "SnapshotConfig",
    "find_config_file",
]
