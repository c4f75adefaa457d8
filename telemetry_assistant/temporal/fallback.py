"""Pluggable second-opinion date resolvers for ambiguous phrasing.

The resolver only consults a fallback when the fast path is unsure. A
fallback may be slow or fail; the caller bounds it with a timeout and treats
any failure as "no opinion".
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Any, Dict, List, Optional, Protocol

from ..config import Settings, settings
from ..domain import DateContext, Period
from ..ollama_client import OllamaClient
from .fast_path import parse_timestamp
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="temporal/fallback")

DEFAULT_FALLBACK_CONFIDENCE = 0.7

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

_PROMPT = """You extract date ranges from questions about a vehicle's movements.
Current date and time: {now}
User timezone: {timezone}

Reply with a single JSON object and nothing else:
{{"has_date_reference": bool, "period": one of {periods},
  "start": ISO-8601 datetime with offset, "end": ISO-8601 datetime with offset,
  "human_readable": short description, "confidence": number between 0 and 1}}

If the question names no time, set has_date_reference to false and period to "none".
Never return a range that ends after the current time."""


class TemporalFallbackResolver(Protocol):
    """Interface for secondary date resolution."""

    def extract(self, query: str, now: datetime, timezone: str) -> Optional[DateContext]:
        """Return a context for `query`, or None when there is no opinion."""
        ...


class NullTemporalFallback:
    """Fallback that never has an opinion; used when the LLM path is disabled."""

    def extract(self, query: str, now: datetime, timezone: str) -> Optional[DateContext]:
        return None


def _strip_fences(raw: str) -> str:
    return _FENCE_RE.sub("", raw.strip()).strip()


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _as_utc(value: Any, default: datetime) -> datetime:
    moment = parse_timestamp(value) if value else None
    return (moment or default).astimezone(dt_timezone.utc)


def parse_date_context(raw: str, now: datetime, timezone: str) -> DateContext:
    """Turn a model reply into a `DateContext`.

    Raises ValueError when the reply is not a JSON object.
    """
    data = json.loads(_strip_fences(raw))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

    has_reference = bool(_pick(data, "has_date_reference", "hasDateReference"))
    try:
        period = Period(str(_pick(data, "period") or "").lower())
    except ValueError:
        period = Period.CUSTOM if has_reference else Period.NONE

    confidence = _pick(data, "confidence")
    try:
        confidence = min(max(float(confidence), 0.0), 1.0)
    except (TypeError, ValueError):
        confidence = DEFAULT_FALLBACK_CONFIDENCE

    return DateContext(
        has_date_reference=has_reference,
        period=period,
        start=_as_utc(_pick(data, "start", "startDate", "start_date"), now),
        end=_as_utc(_pick(data, "end", "endDate", "end_date"), now),
        human_readable=str(_pick(data, "human_readable", "humanReadable") or "current"),
        timezone=timezone,
        confidence=confidence,
        resolved_by="fallback",
    )


@dataclass
class OllamaDateExtractor:
    """Ask a local Ollama model to resolve the date phrase in a query."""
    client: OllamaClient = field(default_factory=OllamaClient)
    timeout_seconds: float | None = None

    def build_messages(self, query: str, now: datetime, timezone: str) -> List[Dict[str, str]]:
        system = _PROMPT.format(
            now=now.isoformat(),
            timezone=timezone,
            periods=", ".join(f'"{p.value}"' for p in Period),
        )
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": query},
        ]

    def extract(self, query: str, now: datetime, timezone: str) -> Optional[DateContext]:
        raw = self.client.chat(
            self.build_messages(query, now, timezone),
            timeout=self.timeout_seconds,
            response_format="json",
        )
        context = parse_date_context(raw, now, timezone)
        logger.debug("Fallback resolved %r to %s (%.2f)", query[:80], context.period.value, context.confidence)
        return context


def build_temporal_fallback(config: Settings | None = None) -> TemporalFallbackResolver:
    """Return the configured fallback implementation."""
    config = config or settings
    if config.date_fallback_enabled:
        logger.info("LLM date fallback enabled (model=%s)", config.ollama_model)
        return OllamaDateExtractor(
            client=OllamaClient(base_url=config.ollama_base_url, model=config.ollama_model, options=config.ollama_options),
            timeout_seconds=config.date_fallback_timeout_seconds,
        )
    return NullTemporalFallback()
