"""HTTP API for the telemetry assistant decision core."""

import hmac
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, Field

from .config import settings
from .data_sources import build_data_source
from .domain import DateContext, Period, PositionRecord, PreparedContext, RoutingDecision, TripRecord, ValidatedDataset
from .pipeline import TelemetryContextBuilder
from .query_router import route_query, routing_cache_key
from .result_cache import InMemoryResultCache
from .telemetry_validator import validate_telemetry
from .temporal import TemporalResolver, build_temporal_fallback
from utils.logging_utils import get_tagged_logger, mask_secret

logger = get_tagged_logger(__name__, tag="api")

if settings.api_key:
    logger.info("API key checks enabled (key=%s)", mask_secret(settings.api_key))


def require_api_key(x_api_key: str | None = Header(default=None)):
    """Validate the X-API-Key header against the configured static key."""
    # If no key is configured, allow requests (dev/default mode).
    if not settings.api_key:
        logger.debug("No API key configured; allowing all requests")
        return

    if not x_api_key:
        logger.debug("No API key provided")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")

    if hmac.compare_digest(str(x_api_key), str(settings.api_key)):
        return

    logger.debug("Invalid API key provided")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


router = APIRouter(dependencies=[Depends(require_api_key)])
RESULT_CACHE = InMemoryResultCache()
RESOLVER = TemporalResolver(build_temporal_fallback(settings))
DATA_SOURCE = build_data_source(settings)
# /context fills RESULT_CACHE; the /cache endpoints below administer it
CONTEXT_BUILDER = TelemetryContextBuilder(DATA_SOURCE, cache=RESULT_CACHE, resolver=RESOLVER)


class RouteRequest(BaseModel):
    """Query to classify and route."""
    query: str
    entity_id: str


class RouteResponse(BaseModel):
    routing: RoutingDecision
    cache_key: str


class ResolveDatesRequest(BaseModel):
    """Query whose date phrase should be resolved."""
    query: str
    client_timestamp: Optional[datetime] = None
    timezone: Optional[str] = None


class ContextRequest(BaseModel):
    """Query to prepare a full telemetry context for."""
    query: str
    entity_id: str
    client_timestamp: Optional[datetime] = None
    timezone: Optional[str] = None


class ValidateRequest(BaseModel):
    """Raw telemetry batch to grade."""
    trips: list[TripRecord] = Field(default_factory=list)
    positions: list[PositionRecord] = Field(default_factory=list)
    date_context: Optional[DateContext] = None
    discard_ghosts: bool = False


class InvalidateResponse(BaseModel):
    entity_id: str
    period: Optional[Period] = None
    invalidated: int


def _check_query(query: str) -> None:
    """Reject oversized queries before any pattern matching runs."""
    if len(query) > settings.max_query_chars:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail=f"Query too long; limit {settings.max_query_chars} characters.")


def _check_timezone(tz_str: str | None) -> None:
    if tz_str is None:
        return
    try:
        ZoneInfo(tz_str)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(status_code=400, detail=f"Invalid timezone: {tz_str}")


@router.post("/route", response_model=RouteResponse)
def route(req: RouteRequest):
    """Classify a query and return its data-fetching plan."""
    _check_query(req.query)
    decision = route_query(req.query, req.entity_id)
    return RouteResponse(routing=decision, cache_key=routing_cache_key(req.query, req.entity_id))


@router.post("/dates/resolve", response_model=DateContext)
def resolve_dates(req: ResolveDatesRequest):
    """Resolve the time window a query refers to."""
    _check_query(req.query)
    _check_timezone(req.timezone)
    return RESOLVER.resolve(req.query, req.client_timestamp, req.timezone)


@router.post("/context", response_model=PreparedContext)
def prepare_context(req: ContextRequest):
    """Route, resolve dates, fetch telemetry through the result cache and validate it."""
    _check_query(req.query)
    _check_timezone(req.timezone)
    return CONTEXT_BUILDER.prepare(
        req.query,
        req.entity_id,
        client_timestamp=req.client_timestamp,
        timezone=req.timezone,
    )


@router.post("/validate", response_model=ValidatedDataset)
def validate(req: ValidateRequest):
    """Grade a batch of trips and positions."""
    return validate_telemetry(req.trips, req.positions, req.date_context, discard_ghosts=req.discard_ghosts)


@router.delete("/cache/{entity_id}", response_model=InvalidateResponse)
def invalidate_cache(entity_id: str, period: Optional[Period] = None):
    """Drop cached telemetry for an entity, optionally for one period."""
    count = RESULT_CACHE.invalidate(entity_id, period)
    logger.info(f"Invalidated {count} cache entries for {entity_id}")
    return InvalidateResponse(entity_id=entity_id, period=period, invalidated=count)


@router.get("/cache/stats")
def cache_stats():
    """Return result cache counters."""
    return RESULT_CACHE.stats()
