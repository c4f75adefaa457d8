"""Plausibility checks for trips and GPS samples before they reach a prompt.

Nothing here rejects data. Each defect appends an issue string, costs some
confidence and may lower the record's quality grade; the dataset grade is the
worst record grade, lowered further by any cross-validation warning. Ghost
trips (ignition flicker, GPS jumps) are kept in the output but never count
toward distance or duration totals.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from .domain import (
    DataQuality,
    DateContext,
    PositionRecord,
    TripRecord,
    ValidatedDataset,
    ValidatedPosition,
    ValidatedTrip,
    ValidationSummary,
    downgrade_quality,
    worse_quality,
)
from .geo import coordinates_in_range, haversine_km, path_distance_km
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="telemetry_validator")

MAX_SPEED_KMH = 300.0
GHOST_MAX_DURATION_SECONDS = 120.0
GHOST_MAX_DISTANCE_KM = 0.1
GHOST_MAX_IMPLIED_SPEED_KMH = 250.0
DISTANCE_TOLERANCE = 0.2
MIN_CHECKED_DISTANCE_KM = 0.1
DURATION_TOLERANCE_SECONDS = 5.0
DUPLICATE_WINDOW_SECONDS = 60.0
CROSS_DISTANCE_TOLERANCE = 0.3
LOW_CONFIDENCE = 0.6
MEDIUM_CONFIDENCE = 0.8

TripInput = Union[TripRecord, Mapping[str, Any]]
PositionInput = Union[PositionRecord, Mapping[str, Any]]


def _as_trip(raw: TripInput) -> TripRecord:
    if isinstance(raw, TripRecord):
        return raw
    return TripRecord.model_validate(raw)


def _as_position(raw: PositionInput) -> PositionRecord:
    if isinstance(raw, PositionRecord):
        return raw
    return PositionRecord.model_validate(raw)


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _wallclock_seconds(trip: TripRecord) -> Optional[float]:
    if trip.start_time is None or trip.end_time is None:
        return None
    return (_utc(trip.end_time) - _utc(trip.start_time)).total_seconds()


def _has_pair(lat: Optional[float], lon: Optional[float]) -> bool:
    # zero counts as missing; trackers report 0 for "no fix"
    return bool(lat) and bool(lon)


def _is_duplicate(trip: TripRecord, other: TripRecord) -> bool:
    if None in (trip.start_time, trip.end_time, other.start_time, other.end_time):
        return False
    start_gap = abs((_utc(trip.start_time) - _utc(other.start_time)).total_seconds())
    end_gap = abs((_utc(trip.end_time) - _utc(other.end_time)).total_seconds())
    return start_gap < DUPLICATE_WINDOW_SECONDS and end_gap < DUPLICATE_WINDOW_SECONDS


def _ghost_reason(trip: TripRecord) -> Optional[str]:
    distance = trip.distance_km or 0.0
    duration = trip.duration_seconds
    if duration is None:
        duration = _wallclock_seconds(trip) or 0.0
    if duration < GHOST_MAX_DURATION_SECONDS and distance < GHOST_MAX_DISTANCE_KM:
        return "Ghost trip: negligible distance and duration"
    if duration > 0:
        implied_speed = distance / (duration / 3600.0)
        if implied_speed > GHOST_MAX_IMPLIED_SPEED_KMH:
            return f"Ghost trip: unrealistic implied speed ({implied_speed:.0f} km/h)"
    return None


def validate_trip(trip: TripRecord, others: Sequence[TripRecord] = ()) -> ValidatedTrip:
    """Validate one trip against its own fields and its batch siblings."""
    issues: List[str] = []
    confidence = 1.0
    quality = DataQuality.HIGH

    if trip.start_time is None or trip.end_time is None:
        issues.append("Missing start_time or end_time")
        confidence -= 0.3
        quality = DataQuality.LOW
    elif _utc(trip.end_time) <= _utc(trip.start_time):
        issues.append("end_time is before or equal to start_time")
        confidence -= 0.2
        quality = downgrade_quality(quality)

    has_start = _has_pair(trip.start_latitude, trip.start_longitude)
    has_end = _has_pair(trip.end_latitude, trip.end_longitude)
    if not (has_start and has_end):
        issues.append("Missing start or end coordinates")
        confidence -= 0.2
        quality = worse_quality(quality, DataQuality.MEDIUM)
    if has_start and not coordinates_in_range(trip.start_latitude, trip.start_longitude):
        issues.append("Invalid start coordinates")
        confidence -= 0.3
        quality = DataQuality.LOW
    if has_end and not coordinates_in_range(trip.end_latitude, trip.end_longitude):
        issues.append("Invalid end coordinates")
        confidence -= 0.3
        quality = DataQuality.LOW

    if trip.distance_km is None:
        issues.append("Missing distance_km")
        confidence -= 0.1
    else:
        if trip.distance_km < 0:
            issues.append("Negative distance")
            confidence -= 0.2
        if has_start and has_end and trip.distance_km > MIN_CHECKED_DISTANCE_KM:
            computed = haversine_km(trip.start_latitude, trip.start_longitude, trip.end_latitude, trip.end_longitude)
            if abs(computed - trip.distance_km) > trip.distance_km * DISTANCE_TOLERANCE:
                issues.append(
                    f"Distance mismatch: reported {trip.distance_km:.2f}km, calculated {computed:.2f}km"
                )
                confidence -= 0.1
                quality = worse_quality(quality, DataQuality.MEDIUM)

    if trip.duration_seconds is not None:
        if trip.duration_seconds < 0:
            issues.append("Negative duration")
            confidence -= 0.2
        wallclock = _wallclock_seconds(trip)
        if wallclock is not None and abs(wallclock - trip.duration_seconds) > DURATION_TOLERANCE_SECONDS:
            issues.append(
                f"Duration mismatch: reported {trip.duration_seconds:.0f}s, calculated {wallclock:.0f}s"
            )
            confidence -= 0.1

    if trip.max_speed is not None and not 0 <= trip.max_speed <= MAX_SPEED_KMH:
        issues.append(f"Unrealistic max_speed: {trip.max_speed} km/h")
        confidence -= 0.1

    duplicates = sum(1 for other in others if other is not trip and _is_duplicate(trip, other))
    if duplicates:
        issues.append(f"Possible duplicate trip ({duplicates} similar trips found)")
        confidence -= 0.1

    confidence = round(min(max(confidence, 0.0), 1.0), 2)
    if confidence < LOW_CONFIDENCE:
        quality = DataQuality.LOW
    elif confidence < MEDIUM_CONFIDENCE:
        quality = worse_quality(quality, DataQuality.MEDIUM)

    ghost = _ghost_reason(trip)
    if ghost:
        issues.append(ghost)
        confidence = 0.0
        quality = DataQuality.LOW

    return ValidatedTrip(
        **trip.model_dump(),
        quality=quality,
        issues=issues,
        confidence=confidence,
        is_ghost=ghost is not None,
    )


def validate_position(position: PositionRecord) -> ValidatedPosition:
    """Grade a single GPS sample."""
    issues: List[str] = []
    quality = DataQuality.HIGH
    lat, lon = position.latitude, position.longitude

    if lat == 0 and lon == 0:
        issues.append("Coordinates at null island (0,0) - likely invalid GPS")
        quality = DataQuality.LOW
    elif not _has_pair(lat, lon):
        issues.append("Missing coordinates")
        quality = DataQuality.LOW
    elif not coordinates_in_range(lat, lon):
        issues.append("Invalid coordinates")
        quality = DataQuality.LOW

    if position.speed is not None and not 0 <= position.speed <= MAX_SPEED_KMH:
        issues.append(f"Unrealistic speed: {position.speed} km/h")
        quality = worse_quality(quality, DataQuality.MEDIUM)

    if position.gps_time is None:
        issues.append("Missing gps_time")
        quality = worse_quality(quality, DataQuality.MEDIUM)

    return ValidatedPosition(**position.model_dump(), quality=quality, issues=issues)


def cross_validate(
    trips: Sequence[ValidatedTrip],
    positions: Sequence[ValidatedPosition],
    date_context: DateContext | None = None,
) -> List[str]:
    """Compare trips against the position trail and the requested range."""
    warnings: List[str] = []
    counted = [t for t in trips if not t.is_ghost]

    trail = [p for p in positions if p.quality is not DataQuality.LOW]
    trip_distance = sum(t.distance_km or 0.0 for t in counted)
    if counted and len(trail) >= 2 and trip_distance > 0:
        trail_distance = path_distance_km((p.latitude, p.longitude) for p in trail)
        if abs(trip_distance - trail_distance) > trip_distance * CROSS_DISTANCE_TOLERANCE:
            warnings.append(
                f"Distance mismatch: trips report {trip_distance:.2f}km, "
                f"positions calculate {trail_distance:.2f}km"
            )

    timed = [t for t in counted if t.start_time is not None and t.end_time is not None]
    if date_context is not None and date_context.has_date_reference and timed:
        earliest = min(_utc(t.start_time) for t in timed)
        latest = max(_utc(t.end_time) for t in timed)
        requested_start, requested_end = _utc(date_context.start), _utc(date_context.end)
        if earliest > requested_start:
            warnings.append(
                f"Earliest trip ({earliest.isoformat()}) is after requested start ({requested_start.isoformat()})"
            )
        if latest < requested_end:
            warnings.append(
                f"Latest trip ({latest.isoformat()}) is before requested end ({requested_end.isoformat()})"
            )
    return warnings


def _overall_quality(grades: Iterable[DataQuality], warnings: Sequence[str]) -> DataQuality:
    overall = DataQuality.MEDIUM if warnings else DataQuality.HIGH
    for grade in grades:
        overall = worse_quality(overall, grade)
    return overall


def validate_telemetry(
    trips: Sequence[TripInput],
    positions: Sequence[PositionInput],
    date_context: DateContext | None = None,
    *,
    discard_ghosts: bool = False,
) -> ValidatedDataset:
    """Validate a batch of trips and positions for one entity.

    Raw records may be pydantic models or plain mappings. With
    `discard_ghosts` ghost trips are left out of the returned trip list but
    still counted in the summary.
    """
    raw_trips = [_as_trip(t) for t in trips]
    validated_trips = [validate_trip(t, raw_trips) for t in raw_trips]
    validated_positions = [validate_position(_as_position(p)) for p in positions]

    warnings = cross_validate(validated_trips, validated_positions, date_context)
    overall = _overall_quality(
        [t.quality for t in validated_trips] + [p.quality for p in validated_positions],
        warnings,
    )

    counted = [t for t in validated_trips if not t.is_ghost]
    issues: List[str] = []
    for record in (*validated_trips, *validated_positions):
        issues.extend(record.issues)
    issues.extend(warnings)

    summary = ValidationSummary(
        total_trips=len(validated_trips),
        valid_trips=sum(1 for t in validated_trips if t.quality is not DataQuality.LOW),
        ghost_trips=len(validated_trips) - len(counted),
        total_positions=len(validated_positions),
        valid_positions=sum(1 for p in validated_positions if p.quality is not DataQuality.LOW),
        total_distance_km=round(sum(max(t.distance_km or 0.0, 0.0) for t in counted), 3),
        total_duration_seconds=sum(max(t.duration_seconds or 0.0, 0.0) for t in counted),
        issues=issues,
        cross_validation_warnings=warnings,
        overall_quality=overall,
    )
    if overall is not DataQuality.HIGH:
        logger.info(
            "Telemetry quality %s: %d/%d trips valid (%d ghost), %d/%d positions valid, %d warnings",
            overall.value,
            summary.valid_trips,
            summary.total_trips,
            summary.ghost_trips,
            summary.valid_positions,
            summary.total_positions,
            len(warnings),
        )

    returned = counted if discard_ghosts else validated_trips
    return ValidatedDataset(trips=returned, positions=validated_positions, overall_quality=overall, summary=summary)
