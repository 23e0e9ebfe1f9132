"""Exception hierarchy for prefixcrawl."""


class PrefixCrawlError(Exception):
    """Base class for all prefixcrawl errors."""


class ConfigurationError(PrefixCrawlError):
    """Raised when configuration cannot be loaded or is inconsistent."""


class ClientNotInitializedError(PrefixCrawlError):
    """Raised when the autocomplete client is used before ``initialize()``."""

    def __init__(self) -> None:
        super().__init__("Autocomplete client not initialized. Call initialize() first.")


class SnapshotError(PrefixCrawlError):
    """Raised when a mandatory snapshot cannot be persisted."""
