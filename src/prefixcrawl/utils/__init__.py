"""Utility modules for prefixcrawl."""

from .atomic import atomic_json_dump, atomic_write_json

__all__ = ["atomic_json_dump", "atomic_write_json"]
