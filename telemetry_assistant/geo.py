"""Great-circle distance helpers for GPS plausibility checks."""

from __future__ import annotations

import math
from typing import Iterable, Optional, Tuple

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points, in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2.0) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def coordinates_in_range(lat: float, lon: float) -> bool:
    return abs(lat) <= 90 and abs(lon) <= 180


def path_distance_km(points: Iterable[Tuple[Optional[float], Optional[float]]]) -> float:
    """Cumulative distance along a sequence of (lat, lon) points.

    Segments touching a point with a missing or zero coordinate are skipped.
    """
    total = 0.0
    prev: Optional[Tuple[float, float]] = None
    for lat, lon in points:
        if not lat or not lon:
            prev = None
            continue
        if prev is not None:
            total += haversine_km(prev[0], prev[1], lat, lon)
        prev = (lat, lon)
    return total
