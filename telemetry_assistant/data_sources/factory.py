"""Factory helpers for choosing a telemetry data source at startup."""

from __future__ import annotations

from telemetry_assistant import config
from telemetry_assistant.data_sources.base import CallableTelemetryDataSource, TelemetryDataSource
from telemetry_assistant.data_sources.http_source import HttpTelemetryDataSource
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/factory")


DEFAULT_SOURCE_NAME = "http"


def _no_records(*_args, **_kwargs):
    return []


def build_data_source(settings: config.Settings | None = None) -> TelemetryDataSource:
    """Instantiate the configured telemetry data source."""
    settings = settings or config.settings
    source = (settings.telemetry_source or DEFAULT_SOURCE_NAME).lower()

    if source == "http":
        base_url = settings.telemetry_api_url
        if not base_url:
            raise ValueError("telemetry_api_url must be set for the http data source")
        logger.info("Using HTTP telemetry data source at %s", base_url)
        return HttpTelemetryDataSource(base_url=base_url, timeout_seconds=settings.telemetry_api_timeout_seconds)

    if source == "empty":
        logger.info("Using empty telemetry data source")
        return CallableTelemetryDataSource(trips=_no_records, positions=_no_records)

    raise ValueError(f"Unknown telemetry source '{source}'")
