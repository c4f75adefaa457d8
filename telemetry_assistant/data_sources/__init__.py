"""Data-access seams for plugging different telemetry backends."""

from .base import CallableTelemetryDataSource, PositionLike, TelemetryDataSource, TripLike
from .factory import build_data_source
from .http_source import HttpTelemetryDataSource

__all__ = [
    "TelemetryDataSource",
    "CallableTelemetryDataSource",
    "HttpTelemetryDataSource",
    "PositionLike",
    "TripLike",
    "build_data_source",
]
