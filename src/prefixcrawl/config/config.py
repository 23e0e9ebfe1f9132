"""
Configuration management for prefixcrawl using Pydantic.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Setup Logging ---
log = logging.getLogger(__name__)

DEFAULT_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz+.- "

# --- Nested Configuration Models ---


class EndpointConfig(BaseModel):
    """Remote autocomplete endpoint."""

    url: str = Field(
        default="http://35.200.185.69:8000/v3/autocomplete",
        description="Base URL of the autocomplete endpoint.",
    )
    query_param: str = Field(default="query", description="Name of the query-string parameter carrying the prefix.")
    timeout: float = Field(default=5.0, gt=0, description="Per-request timeout in seconds.")
    user_agent: str = Field(default="prefixcrawl/0.1.0", description="User-Agent string for HTTP requests.")


class ExplorationConfig(BaseModel):
    """Shape of the prefix trie walk."""

    alphabet: str = Field(default=DEFAULT_ALPHABET, description="Characters appended when expanding a prefix.")
    page_cap: int = Field(default=15, ge=1, description="Result count that marks a query as truncated.")
    seeds: Optional[List[str]] = Field(
        default=None,
        description="Initial prefixes. Defaults to one prefix per alphabet character.",
    )
    worker_pause_seconds: float = Field(default=0.5, ge=0, description="Pause taken by a worker after each prefix.")

    @field_validator("alphabet")
    @classmethod
    def validate_alphabet(cls, v: str) -> str:
        if not v:
            raise ValueError("alphabet must not be empty")
        if len(set(v)) != len(v):
            raise ValueError("alphabet must not contain duplicate characters")
        return v

    def initial_prefixes(self) -> List[str]:
        return list(self.seeds) if self.seeds is not None else list(self.alphabet)


class RateLimiterConfig(BaseModel):
    max_requests: int = Field(default=80, ge=1)
    per_seconds: float = Field(default=60.0, gt=0)


class ConcurrencyConfig(BaseModel):
    """AIMD bounds and backlog thresholds."""

    initial: int = Field(default=26, ge=1)
    minimum: int = Field(default=5, ge=1)
    maximum: int = Field(default=80, ge=1)
    increase_step: int = Field(default=1, ge=1)
    decrease_factor: float = Field(default=0.9, gt=0, lt=1)
    backlog_high: int = Field(default=100, ge=0)
    backlog_low: int = Field(default=20, ge=0)
    sample_interval_seconds: float = Field(default=5.0, gt=0)

    @model_validator(mode="after")
    def check_bounds(self) -> "ConcurrencyConfig":
        if not self.minimum <= self.initial <= self.maximum:
            raise ValueError(
                f"concurrency bounds must satisfy minimum <= initial <= maximum "
                f"(got {self.minimum}, {self.initial}, {self.maximum})"
            )
        if self.backlog_low >= self.backlog_high:
            raise ValueError("backlog_low must be lower than backlog_high")
        return self


class RetryConfig(BaseModel):
    base_delay_seconds: float = Field(default=0.5, ge=0, description="Base of the exponential transient backoff.")
    max_retries: int = Field(default=5, ge=0, description="Transient retries allowed before a prefix is abandoned.")
    rate_limit_cooldown_seconds: float = Field(default=1.0, ge=0, description="Delay before retrying after a 429.")
    jitter_seconds: float = Field(default=0.2, ge=0, description="Upper bound of the random jitter added to delays.")


class SnapshotConfig(BaseModel):
    """Where and how often results are persisted."""

    path: Path = Field(default=Path("extracted_names.json"))
    names_only_path: Optional[Path] = Field(default=Path("names_only.json"))
    dead_letter_path: Optional[Path] = Field(default=Path("abandoned_prefixes.json"))
    increment: int = Field(default=500, ge=1, description="Growth of the discovered set that triggers a snapshot.")
    write_timeout_seconds: float = Field(
        default=5.0, gt=0, description="How long a periodic snapshot may block the run before it is left to finish."
    )

    @field_validator("path", "names_only_path", "dead_letter_path", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> Path | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path


class MonitoringConfig(BaseModel):
    """Configuration for logging and metrics."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: str | None = Field(default=None, description="Path to log file. If None, logs to console.")
    prometheus_port: int | None = Field(default=None, description="Port for Prometheus metrics exporter.")

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "prefixcrawl"
    version: str = "0.1.0"
    endpoint: EndpointConfig = Field(default_factory=EndpointConfig)
    exploration: ExplorationConfig = Field(default_factory=ExplorationConfig)
    rate_limiter: RateLimiterConfig = Field(default_factory=RateLimiterConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="PREFIXCRAWL_", env_nested_delimiter="__", case_sensitive=False)

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        return cls.model_validate(yaml_data)


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    paths_to_check = [
        current_dir / "config.yaml",
        current_dir / "config.yml",
    ]
    for path in paths_to_check:
        if path.exists():
            return path
    return None
