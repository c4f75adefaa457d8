"""Shared protocol and types for result cache backends."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from telemetry_assistant.domain import Period

DEFAULT_TTL_SECONDS = 300

PERIOD_TTL_SECONDS: Dict[Period, int] = {
    Period.TODAY: 60,
    Period.YESTERDAY: 300,
    Period.THIS_WEEK: 120,
    Period.LAST_WEEK: 600,
    Period.THIS_MONTH: 300,
    Period.LAST_MONTH: 1800,
    Period.CUSTOM: DEFAULT_TTL_SECONDS,
    # "now"-scoped data goes stale fastest
    Period.NONE: 30,
}


class QueryKind(str, Enum):
    """Which record family a cached payload holds."""
    TRIPS = "trips"
    POSITIONS = "positions"
    BOTH = "both"


@dataclass
class CacheEntry:
    payload: Any
    created_at: float
    expires_at: float


def ttl_for_period(period: Period, overrides: Optional[Dict[Period, int]] = None) -> int:
    """TTL in seconds for a period tag; unclassified tags get the default."""
    if overrides and period in overrides:
        return overrides[period]
    return PERIOD_TTL_SECONDS.get(period, DEFAULT_TTL_SECONDS)


def _utc_day(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).date().isoformat()


def build_cache_key(source_id: str, period: Period, start: datetime, end: datetime, kind: QueryKind) -> str:
    """Day-granular key so near-identical ranges share an entry."""
    return f"{source_id}:{Period(period).value}:{_utc_day(start)}:{_utc_day(end)}:{QueryKind(kind).value}"


class ResultCache(Protocol):
    """Protocol for result cache backends."""
    def get(self, source_id: str, period: Period, start: datetime, end: datetime, kind: QueryKind) -> Optional[Any]:
        """Return the cached payload, or None on a miss or expired entry."""

    def set(self, source_id: str, period: Period, start: datetime, end: datetime, kind: QueryKind, payload: Any) -> None:
        """Store a payload under the derived key; last write wins."""

    def invalidate(self, source_id: str, period: Optional[Period] = None) -> int:
        """Drop every entry for a source (optionally one period); return the count."""

    def clear(self) -> None:
        """Drop all entries."""
