"""Date-range resolution for telemetry queries."""

from .fallback import NullTemporalFallback, OllamaDateExtractor, TemporalFallbackResolver, build_temporal_fallback
from .fast_path import extract_date_context, fast_path, is_historical_movement_query, score_confidence
from .resolver import TemporalResolver, validate_date_context

__all__ = [
    "NullTemporalFallback",
    "OllamaDateExtractor",
    "TemporalFallbackResolver",
    "TemporalResolver",
    "build_temporal_fallback",
    "extract_date_context",
    "fast_path",
    "is_historical_movement_query",
    "score_confidence",
    "validate_date_context",
]
