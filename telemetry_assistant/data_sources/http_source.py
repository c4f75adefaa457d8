"""Fetch trips and GPS samples from a telemetry REST backend."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

import requests
from requests.utils import quote

from telemetry_assistant.data_sources.base import PositionLike, TelemetryDataSource, TripLike
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/http")


@dataclass
class HttpTelemetryDataSource(TelemetryDataSource):
    """Read `/entities/{id}/trips` and `/entities/{id}/positions` from `base_url`.

    Both endpoints take ISO-8601 `start`/`end` and an optional `limit`, and
    answer with either a JSON list or an object holding the list under
    `items`.
    """

    base_url: str
    timeout_seconds: float = 10.0
    session: requests.Session = field(default_factory=requests.Session)

    def _get(self, entity_id: str, resource: str, start: datetime, end: datetime, limit: int | None) -> List[Any]:
        url = f"{self.base_url.rstrip('/')}/entities/{quote(entity_id, safe='')}/{resource}"
        params: Dict[str, Any] = {"start": start.isoformat(), "end": end.isoformat()}
        if limit is not None:
            params["limit"] = limit
        logger.debug("GET %s params=%s", url, params)
        resp = self.session.get(url, params=params, timeout=self.timeout_seconds)
        resp.raise_for_status()

        body = resp.json()
        if isinstance(body, dict):
            body = body.get("items", [])
        if not isinstance(body, list):
            raise ValueError(f"Unexpected {resource} payload from {url}: {type(body).__name__}")
        logger.debug("Fetched %d %s for %s", len(body), resource, entity_id)
        return body

    def fetch_trips(self, entity_id: str, start: datetime, end: datetime, *, limit: int | None = None) -> List[TripLike]:
        return self._get(entity_id, "trips", start, end, limit)

    def fetch_positions(
        self, entity_id: str, start: datetime, end: datetime, *, limit: int | None = None
    ) -> List[PositionLike]:
        return self._get(entity_id, "positions", start, end, limit)
