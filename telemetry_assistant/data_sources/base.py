"""Interfaces and helpers for telemetry data sources."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Mapping, Protocol, Union

from telemetry_assistant.domain import PositionRecord, TripRecord

TripLike = Union[TripRecord, Mapping[str, Any]]
PositionLike = Union[PositionRecord, Mapping[str, Any]]


class TelemetryDataSource(Protocol):
    """Interface for anything that can provide raw trips and GPS samples."""

    def fetch_trips(
        self,
        entity_id: str,
        start: datetime,
        end: datetime,
        *,
        limit: int | None = None,
    ) -> List[TripLike]:
        """Return trips for `entity_id` overlapping the UTC range."""
        ...

    def fetch_positions(
        self,
        entity_id: str,
        start: datetime,
        end: datetime,
        *,
        limit: int | None = None,
    ) -> List[PositionLike]:
        """Return GPS samples for `entity_id` within the UTC range, oldest first."""
        ...


@dataclass
class CallableTelemetryDataSource(TelemetryDataSource):
    """Wrap two callables so they can be swapped for different backends."""

    trips: Callable[..., List[TripLike]]
    positions: Callable[..., List[PositionLike]]

    def fetch_trips(self, *args, **kwargs) -> List[TripLike]:
        """Delegate to the configured trip callable."""
        return self.trips(*args, **kwargs)

    def fetch_positions(self, *args, **kwargs) -> List[PositionLike]:
        """Delegate to the configured position callable."""
        return self.positions(*args, **kwargs)
