"""Warm-start persistence for discovered nodes."""

from nodetracker.storage.cache import read_cache, write_cache

__all__ = ["read_cache", "write_cache"]
