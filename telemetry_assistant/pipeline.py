"""End-to-end preparation of the data context for one vehicle query.

classify and route -> resolve the date range when history matters -> fetch
trips/positions through the result cache -> validate. The returned
`PreparedContext` is what prompt assembly consumes.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Any, List, Optional, Tuple

from .config import settings
from .data_sources import TelemetryDataSource
from .domain import (
    CacheStrategy,
    DataSourceName,
    DataSourceRequirement,
    DateContext,
    Period,
    PreparedContext,
    RoutingDecision,
)
from .query_router import route_query
from .result_cache import InMemoryResultCache, QueryKind, ResultCache
from .telemetry_validator import validate_telemetry
from .temporal import TemporalResolver, build_temporal_fallback, is_historical_movement_query
from .temporal.fast_path import reference_now, resolve_timezone
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="pipeline")


@dataclass
class CachedBatch:
    """Fetched records plus the limit they were fetched with."""
    records: List[Any]
    limit: Optional[int] = None

    def covers(self, limit: Optional[int]) -> bool:
        # a batch shorter than its limit already holds the whole window
        if self.limit is None or len(self.records) < self.limit:
            return True
        return limit is not None and limit <= self.limit

    def take(self, limit: Optional[int]) -> List[Any]:
        return list(self.records if limit is None else self.records[:limit])


def _requirement(routing: RoutingDecision, source: DataSourceName) -> Optional[DataSourceRequirement]:
    for requirement in routing.data_sources:
        if requirement.source is source:
            return requirement
    return None


class TelemetryContextBuilder:
    """Wire router, resolver, cache and validator around a data source."""

    def __init__(
        self,
        data_source: TelemetryDataSource,
        *,
        cache: ResultCache | None = None,
        resolver: TemporalResolver | None = None,
        rng: random.Random | None = None,
        discard_ghosts: bool = False,
    ):
        self.data_source = data_source
        self.cache = cache if cache is not None else InMemoryResultCache()
        self.resolver = resolver or TemporalResolver(build_temporal_fallback(settings))
        self.rng = rng
        self.discard_ghosts = discard_ghosts

    def _window(
        self,
        date_context: Optional[DateContext],
        client_timestamp: datetime | str | None,
        timezone: str | None,
    ) -> Tuple[Period, datetime, datetime]:
        if date_context is not None and date_context.has_date_reference:
            return date_context.period, date_context.start, date_context.end
        _, tz = resolve_timezone(timezone)
        now = reference_now(client_timestamp, tz).astimezone(dt_timezone.utc)
        return Period.NONE, now - timedelta(hours=settings.recent_position_window_hours), now

    def _fetch(
        self,
        entity_id: str,
        kind: QueryKind,
        requirement: DataSourceRequirement,
        window: Tuple[Period, datetime, datetime],
        use_cache: bool,
        cache_hits: List[str],
    ) -> List[Any]:
        period, start, end = window
        limit = requirement.limit
        if use_cache:
            cached = self.cache.get(entity_id, period, start, end, kind)
            if isinstance(cached, CachedBatch):
                if cached.covers(limit):
                    cache_hits.append(kind.value)
                    return cached.take(limit)
                logger.debug(
                    "Cached %s for %s were fetched with limit %s; %s requested, refetching",
                    kind.value, entity_id, cached.limit, limit,
                )

        if kind is QueryKind.TRIPS:
            records = self.data_source.fetch_trips(entity_id, start, end, limit=limit)
        else:
            records = self.data_source.fetch_positions(entity_id, start, end, limit=limit)
        records = list(records or [])
        self.cache.set(entity_id, period, start, end, kind, CachedBatch(records=records, limit=limit))
        return records

    def prepare(
        self,
        query: str,
        entity_id: str,
        *,
        client_timestamp: datetime | str | None = None,
        timezone: str | None = None,
    ) -> PreparedContext:
        """Build routing, date range and validated telemetry for `query`."""
        routing = route_query(query, entity_id, rng=self.rng)

        date_context = None
        if routing.intent.requires_history or is_historical_movement_query(query):
            date_context = self.resolver.resolve(query, client_timestamp, timezone)

        trips_req = _requirement(routing, DataSourceName.TRIPS)
        positions_req = _requirement(routing, DataSourceName.POSITION_HISTORY)
        if trips_req is None and positions_req is None:
            return PreparedContext(entity_id=entity_id, routing=routing, date_context=date_context)

        window = self._window(date_context, client_timestamp, timezone)
        allow_cache = routing.cache_strategy is not CacheStrategy.FRESH
        cache_hits: List[str] = []

        trips: List[Any] = []
        positions: List[Any] = []
        if trips_req is not None:
            trips = self._fetch(entity_id, QueryKind.TRIPS, trips_req, window, allow_cache and trips_req.use_cache, cache_hits)
        if positions_req is not None:
            positions = self._fetch(
                entity_id, QueryKind.POSITIONS, positions_req, window, allow_cache and positions_req.use_cache, cache_hits
            )

        dataset = validate_telemetry(trips, positions, date_context, discard_ghosts=self.discard_ghosts)
        logger.info(
            "Prepared context for %s: intent=%s period=%s quality=%s cache_hits=%s",
            entity_id,
            routing.intent.type.value,
            window[0].value,
            dataset.overall_quality.value,
            cache_hits,
        )
        return PreparedContext(
            entity_id=entity_id,
            routing=routing,
            date_context=date_context,
            dataset=dataset,
            cache_hits=cache_hits,
        )
