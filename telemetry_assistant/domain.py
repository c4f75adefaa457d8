"""Domain vocabulary and schemas for the telemetry assistant decision core.

This module defines the stable contract between the decision core and the
layers that consume it (prompt assembly, the HTTP surface, data access): the
enums, raw telemetry records and the Pydantic models for routing decisions,
resolved date ranges and validated datasets. No interpretation logic lives
here.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _StrictBaseModel(BaseModel):
    """Base model with strict extra handling."""

    model_config = ConfigDict(extra="forbid")


class _FrozenModel(BaseModel):
    """Immutable per-query value."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class _RawRecord(BaseModel):
    """Loose base for records handed over by the data-access layer."""

    model_config = ConfigDict(extra="ignore")


class IntentType(str, Enum):
    """Query intent categories. Declaration order is the tie-break order."""
    LOCATION = "location"
    TRIP = "trip"
    STATS = "stats"
    MAINTENANCE = "maintenance"
    CONTROL = "control"
    HISTORY = "history"
    DRIVER = "driver"
    GENERAL = "general"


class DataSourceName(str, Enum):
    """Backend data sources the calling layer knows how to fetch."""
    GPS = "gps"
    POSITION_HISTORY = "position_history"
    TRIPS = "trips"
    DRIVER = "driver"
    VEHICLE_INFO = "vehicle_info"
    CHAT_HISTORY = "chat_history"
    LLM_SETTINGS = "llm_settings"
    ALARMS = "alarms"


class CacheStrategy(str, Enum):
    """How aggressively cached data may be reused for a query."""
    FRESH = "fresh"
    CACHED = "cached"
    HYBRID = "hybrid"


class RoutePriority(str, Enum):
    """Scheduling priority for a routed query."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class Period(str, Enum):
    """Coarse semantic label for a resolved date range."""
    TODAY = "today"
    YESTERDAY = "yesterday"
    THIS_WEEK = "this_week"
    LAST_WEEK = "last_week"
    THIS_MONTH = "this_month"
    LAST_MONTH = "last_month"
    CUSTOM = "custom"
    LAST_TRIP = "last_trip"
    NONE = "none"


class DataQuality(str, Enum):
    """Quality grade for a record or a whole dataset."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


_QUALITY_RANK = {DataQuality.HIGH: 0, DataQuality.MEDIUM: 1, DataQuality.LOW: 2}


def worse_quality(a: DataQuality, b: DataQuality) -> DataQuality:
    """Return the lower of two quality grades."""
    return a if _QUALITY_RANK[a] >= _QUALITY_RANK[b] else b


def downgrade_quality(quality: DataQuality) -> DataQuality:
    """Step a grade down once: high -> medium -> low."""
    if quality is DataQuality.HIGH:
        return DataQuality.MEDIUM
    return DataQuality.LOW


class Intent(_FrozenModel):
    """Classified intent of a single query (or a conversation)."""
    type: IntentType
    confidence: float = Field(ge=0.0, le=1.0)
    requires_fresh_data: bool = False
    requires_history: bool = False
    matched_keywords: List[str] = Field(default_factory=list)


class DataSourceRequirement(_FrozenModel):
    """One backend source the calling layer should fetch for a query."""
    source: DataSourceName
    required: bool
    limit: int | None = None
    use_cache: bool = True


class RoutingDecision(_FrozenModel):
    """What to fetch, how fresh, and how urgently, for one query."""
    intent: Intent
    data_sources: List[DataSourceRequirement]
    cache_strategy: CacheStrategy
    priority: RoutePriority
    estimated_latency_ms: int


class DateContext(_StrictBaseModel):
    """Resolved time window for a query. `start`/`end` are UTC instants."""
    has_date_reference: bool
    period: Period
    start: datetime
    end: datetime
    human_readable: str
    timezone: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    issues: List[str] = Field(default_factory=list)
    resolved_by: str = "fast_path"


class DateValidation(_StrictBaseModel):
    """Outcome of the post-resolution sanity pass over a `DateContext`."""
    is_valid: bool
    issues: List[str] = Field(default_factory=list)
    context: DateContext


class TripRecord(_RawRecord):
    """Trip as reported by the tracking backend, before validation."""
    id: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    start_latitude: float | None = None
    start_longitude: float | None = None
    end_latitude: float | None = None
    end_longitude: float | None = None
    distance_km: float | None = None
    duration_seconds: float | None = None
    max_speed: float | None = None
    avg_speed: float | None = None


class ValidatedTrip(TripRecord):
    """Trip annotated with quality grade, issues and confidence."""
    quality: DataQuality = DataQuality.HIGH
    issues: List[str] = Field(default_factory=list)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    is_ghost: bool = False


class PositionRecord(_RawRecord):
    """Single GPS sample as reported by the tracking backend."""
    latitude: float | None = None
    longitude: float | None = None
    speed: float | None = None
    gps_time: datetime | None = None
    ignition_on: bool | None = None


class ValidatedPosition(PositionRecord):
    """GPS sample annotated with quality grade and issues."""
    quality: DataQuality = DataQuality.HIGH
    issues: List[str] = Field(default_factory=list)


class ValidationSummary(_StrictBaseModel):
    """Aggregate counts, sums and warnings for a validated batch."""
    total_trips: int = 0
    valid_trips: int = 0
    ghost_trips: int = 0
    total_positions: int = 0
    valid_positions: int = 0
    total_distance_km: float = 0.0
    total_duration_seconds: float = 0.0
    issues: List[str] = Field(default_factory=list)
    cross_validation_warnings: List[str] = Field(default_factory=list)
    overall_quality: DataQuality = DataQuality.HIGH


class ValidatedDataset(_StrictBaseModel):
    """Validated trips and positions handed to prompt assembly."""
    trips: List[ValidatedTrip] = Field(default_factory=list)
    positions: List[ValidatedPosition] = Field(default_factory=list)
    overall_quality: DataQuality = DataQuality.HIGH
    summary: ValidationSummary = Field(default_factory=ValidationSummary)


class SourceAvailability(_StrictBaseModel):
    """Result of checking a data bag against a routing decision."""
    valid: bool
    missing: List[DataSourceName] = Field(default_factory=list)


class PreparedContext(_StrictBaseModel):
    """Everything the prompt-assembly layer needs for one query."""
    entity_id: str
    routing: RoutingDecision
    date_context: Optional[DateContext] = None
    dataset: Optional[ValidatedDataset] = None
    cache_hits: List[str] = Field(default_factory=list)
