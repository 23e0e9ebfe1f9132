"""
prefixcrawl - Adaptive explorer for paginated autocomplete endpoints.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Config
from .crawler import AutocompleteClient, ExplorationReport, PrefixExplorer

__all__ = ["__version__", "Config", "AutocompleteClient", "ExplorationReport", "PrefixExplorer"]
