"""Result cache backends."""

from .base import CacheEntry, QueryKind, ResultCache, build_cache_key, ttl_for_period
from .memory import InMemoryResultCache

__all__ = [
    "CacheEntry",
    "QueryKind",
    "ResultCache",
    "InMemoryResultCache",
    "build_cache_key",
    "ttl_for_period",
]
