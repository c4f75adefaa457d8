"""Map classified intents to data-fetching plans.

A routing decision tells the calling layer which backend sources to fetch,
whether cached copies are acceptable, how urgent the query is and roughly how
long answering it will take.
"""

from __future__ import annotations

import random
import re
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .domain import (
    CacheStrategy,
    DataSourceName,
    DataSourceRequirement,
    Intent,
    IntentType,
    RoutePriority,
    RoutingDecision,
    SourceAvailability,
)
from .intent_classifier import classify_intent, requires_fresh_data
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="query_router")

# Model round-trip every answer pays for.
BASE_LATENCY_MS = 500
FRESH_OVERHEAD_MS = 200
OPTIONAL_SKIP_PROBABILITY = 0.2

SOURCE_LATENCY_MS: Dict[DataSourceName, int] = {
    DataSourceName.POSITION_HISTORY: 100,
    DataSourceName.TRIPS: 150,
    DataSourceName.DRIVER: 50,
    DataSourceName.VEHICLE_INFO: 50,
    DataSourceName.CHAT_HISTORY: 80,
    DataSourceName.LLM_SETTINGS: 30,
    DataSourceName.ALARMS: 100,
}
GPS_CACHED_LATENCY_MS = 50
GPS_FRESH_LATENCY_MS = 300

FETCH_STAGES: Tuple[frozenset, ...] = (
    frozenset({DataSourceName.VEHICLE_INFO, DataSourceName.LLM_SETTINGS, DataSourceName.DRIVER}),
    frozenset({DataSourceName.GPS, DataSourceName.POSITION_HISTORY}),
    frozenset({DataSourceName.TRIPS, DataSourceName.ALARMS, DataSourceName.CHAT_HISTORY}),
)


def _req(source: DataSourceName, required: bool, limit: int | None = None, use_cache: bool = True) -> DataSourceRequirement:
    return DataSourceRequirement(source=source, required=required, limit=limit, use_cache=use_cache)


BASELINE_SOURCES: Tuple[DataSourceRequirement, ...] = (
    _req(DataSourceName.VEHICLE_INFO, required=True),
    _req(DataSourceName.LLM_SETTINGS, required=False),
)


def sources_for_intent(intent_type: IntentType, needs_fresh_data: bool) -> List[DataSourceRequirement]:
    """Return the intent-specific source requirements."""
    gps_live = _req(DataSourceName.GPS, required=True, use_cache=not needs_fresh_data)
    gps_optional = _req(DataSourceName.GPS, required=False)

    table: Dict[IntentType, List[DataSourceRequirement]] = {
        IntentType.LOCATION: [
            gps_live,
            _req(DataSourceName.POSITION_HISTORY, required=False, limit=5),
        ],
        IntentType.TRIP: [
            _req(DataSourceName.TRIPS, required=True, limit=20),
            gps_optional,
        ],
        IntentType.STATS: [
            _req(DataSourceName.TRIPS, required=True, limit=50),
            _req(DataSourceName.POSITION_HISTORY, required=True, limit=100),
            gps_optional,
        ],
        IntentType.MAINTENANCE: [
            gps_live,
            _req(DataSourceName.POSITION_HISTORY, required=True, limit=50),
            _req(DataSourceName.ALARMS, required=False, limit=20),
        ],
        IntentType.CONTROL: [
            gps_optional,
            # settings changes must act on current state
            _req(DataSourceName.LLM_SETTINGS, required=True, use_cache=False),
        ],
        IntentType.HISTORY: [
            _req(DataSourceName.POSITION_HISTORY, required=True, limit=100),
            _req(DataSourceName.TRIPS, required=False, limit=50),
            _req(DataSourceName.CHAT_HISTORY, required=False, limit=50),
        ],
        IntentType.DRIVER: [
            _req(DataSourceName.DRIVER, required=True),
            gps_optional,
        ],
        IntentType.GENERAL: [gps_optional],
    }
    return table[intent_type]


def determine_cache_strategy(intent: Intent, needs_fresh_data: bool) -> CacheStrategy:
    """Pick fresh/cached/hybrid; rules are evaluated in priority order."""
    if needs_fresh_data and intent.confidence > 0.6:
        return CacheStrategy.FRESH
    if intent.type is IntentType.CONTROL:
        return CacheStrategy.FRESH
    if intent.type in (IntentType.TRIP, IntentType.STATS, IntentType.HISTORY):
        return CacheStrategy.CACHED
    if intent.type in (IntentType.LOCATION, IntentType.MAINTENANCE):
        return CacheStrategy.HYBRID
    return CacheStrategy.CACHED


def determine_priority(intent: Intent, needs_fresh_data: bool) -> RoutePriority:
    """Control and safety-relevant queries jump the queue; analytics wait."""
    if intent.type is IntentType.CONTROL:
        return RoutePriority.HIGH
    if intent.type is IntentType.MAINTENANCE and intent.confidence > 0.7:
        return RoutePriority.HIGH
    if needs_fresh_data and intent.confidence > 0.6:
        return RoutePriority.HIGH
    if intent.type in (IntentType.STATS, IntentType.HISTORY):
        return RoutePriority.LOW
    return RoutePriority.NORMAL


def estimate_latency(
    sources: Sequence[DataSourceRequirement],
    cache_strategy: CacheStrategy,
    rng: random.Random | None = None,
) -> int:
    """Rough end-to-end latency in milliseconds.

    Optional sources are sometimes left out of the estimate, since callers
    may skip them under load. Execution never skips them.
    """
    rng = rng or random
    total = BASE_LATENCY_MS
    for source in sources:
        if not source.required and rng.random() > 1 - OPTIONAL_SKIP_PROBABILITY:
            continue
        if source.source is DataSourceName.GPS:
            total += GPS_CACHED_LATENCY_MS if source.use_cache else GPS_FRESH_LATENCY_MS
        else:
            total += SOURCE_LATENCY_MS.get(source.source, 100)
    if cache_strategy is CacheStrategy.FRESH:
        total += FRESH_OVERHEAD_MS
    return int(round(total))


def route_query(query: str, entity_id: str, *, rng: random.Random | None = None) -> RoutingDecision:
    """Classify `query` and build the data-fetching plan for `entity_id`."""
    intent = classify_intent(query)
    needs_fresh = requires_fresh_data(query, intent)

    sources = [*BASELINE_SOURCES, *sources_for_intent(intent.type, needs_fresh)]
    cache_strategy = determine_cache_strategy(intent, needs_fresh)
    priority = determine_priority(intent, needs_fresh)

    decision = RoutingDecision(
        intent=intent,
        data_sources=sources,
        cache_strategy=cache_strategy,
        priority=priority,
        estimated_latency_ms=estimate_latency(sources, cache_strategy, rng),
    )
    logger.info(
        "Routed query for %s: intent=%s confidence=%.2f cache=%s priority=%s latency~%dms",
        entity_id,
        intent.type.value,
        intent.confidence,
        cache_strategy.value,
        priority.value,
        decision.estimated_latency_ms,
    )
    return decision


def optimize_fetch_order(sources: Sequence[DataSourceRequirement]) -> List[List[DataSourceRequirement]]:
    """Group sources into stages: metadata, then position data, then trip-derived data.

    Sources within a stage can be fetched in parallel; each stage may depend
    on the previous one. Empty stages are dropped.
    """
    stages = [[s for s in sources if s.source in members] for members in FETCH_STAGES]
    return [stage for stage in stages if stage]


def validate_data_sources(routing: RoutingDecision, available: Mapping[str, Any]) -> SourceAvailability:
    """Report required sources that are absent or empty in `available`."""
    missing: List[DataSourceName] = []
    for requirement in routing.data_sources:
        if not requirement.required:
            continue
        data = available.get(requirement.source.value)
        if not data:
            missing.append(requirement.source)
    if missing:
        logger.warning("Missing required sources: %s", [m.value for m in missing])
    return SourceAvailability(valid=not missing, missing=missing)


_PUNCTUATION = re.compile(r"[?.!,]")


def routing_cache_key(query: str, entity_id: str) -> str:
    """Key under which near-identical questions share a routing decision."""
    intent = classify_intent(query)
    normalized = _PUNCTUATION.sub("", (query or "").lower()).strip()[:50]
    return f"routing:{entity_id}:{intent.type.value}:{normalized}"
