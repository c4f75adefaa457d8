"""In-process result cache with period-dependent TTLs."""

import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from telemetry_assistant.config import settings
from telemetry_assistant.domain import Period
from telemetry_assistant.result_cache.base import CacheEntry, QueryKind, ResultCache, build_cache_key, ttl_for_period

from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="result_cache/in_memory_result_cache")


class InMemoryResultCache(ResultCache):
    """Thread-safe, TTL-aware cache of fetched telemetry.

    Expired entries are dropped when read, and swept in bulk after a write
    that pushes the entry count over `max_entries`. There is no background
    timer.
    """

    def __init__(
        self,
        max_entries: int | None = None,
        ttls: Optional[Dict[Period, int]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        logger.debug("Initializing InMemoryResultCache")
        self.max_entries = settings.cache_max_entries if max_entries is None else max_entries
        self.ttls = ttls
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, source_id: str, period: Period, start: datetime, end: datetime, kind: QueryKind) -> Optional[Any]:
        """Return the cached payload or None."""
        key = build_cache_key(source_id, period, start, end, kind)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expires_at <= self._clock():
                self._entries.pop(key, None)
                self._misses += 1
                return None
            self._hits += 1
            return entry.payload

    def set(self, source_id: str, period: Period, start: datetime, end: datetime, kind: QueryKind, payload: Any) -> None:
        """Store `payload`; sweeps expired entries when over capacity."""
        key = build_cache_key(source_id, period, start, end, kind)
        with self._lock:
            now = self._clock()
            self._entries[key] = CacheEntry(
                payload=payload,
                created_at=now,
                expires_at=now + ttl_for_period(Period(period), self.ttls),
            )
            if len(self._entries) > self.max_entries:
                self._sweep(now)

    def _sweep(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]
        logger.debug("Swept %d expired cache entries (%d remain)", len(expired), len(self._entries))

    def invalidate(self, source_id: str, period: Optional[Period] = None) -> int:
        """Remove entries for a source, narrowed to one period when given."""
        prefix = f"{source_id}:" if period is None else f"{source_id}:{Period(period).value}:"
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        logger.info("Invalidated %d cache entries for %s (period=%s)", len(doomed), source_id, period)
        return len(doomed)

    def clear(self) -> None:
        """Clear all entries and counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "max_entries": self.max_entries,
                "hits": self._hits,
                "misses": self._misses,
            }
