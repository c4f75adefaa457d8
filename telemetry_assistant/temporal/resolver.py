"""Date resolution: fast path, optional fallback, then a sanity pass.

The resolver always produces a `DateContext`. When the fast path is unsure it
may consult a `TemporalFallbackResolver` under a hard timeout; any failure
there silently keeps the fast-path answer. Whatever is chosen goes through
`validate_date_context`, which guarantees ``start <= end <= now``.
"""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import List, Optional

from ..config import settings
from ..domain import DateContext, DateValidation, Period
from .fallback import NullTemporalFallback, TemporalFallbackResolver
from .fast_path import end_of_day, extract_date_context, reference_now, resolve_timezone, start_of_day
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="temporal/resolver")

ESCALATE_BELOW = 0.9
ALWAYS_ESCALATE_BELOW = 0.7
FUTURE_CLAMP_PENALTY = 0.8
SWAP_PENALTY = 0.7
MAX_SPAN = timedelta(days=365)

AMBIGUITY_MARKERS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
        r"\b(that|this)\s+(day|time|morning|afternoon|evening)\b",
        r"\b(recently|lately|earlier|before)\b",
        r"\b(when|what\s+time)\s+(did|was|were)\b",
    )
]


def has_ambiguity_marker(query: str) -> bool:
    return any(p.search(query or "") for p in AMBIGUITY_MARKERS)


def should_escalate(query: str, context: DateContext) -> bool:
    """True when the fast-path answer is unsure enough to ask the fallback."""
    unsure = context.confidence < ESCALATE_BELOW or context.period is Period.NONE
    return unsure and (has_ambiguity_marker(query) or context.confidence < ALWAYS_ESCALATE_BELOW)


def prefer_fallback(fast: DateContext, fallback: DateContext) -> bool:
    if fallback.confidence > fast.confidence:
        return True
    return fallback.has_date_reference and not fast.has_date_reference


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=dt_timezone.utc)
    return moment.astimezone(dt_timezone.utc)


def validate_date_context(context: DateContext, now: datetime) -> DateValidation:
    """Clamp, order and flag a resolved range against the reference instant.

    Future bounds are clamped to `now` (confidence x0.8 each), a reversed
    range is swapped (x0.7) and spans over a year are only flagged. After any
    correction the bounds are re-snapped to whole local days, never past now.
    """
    now_utc = _utc(now)
    start, end = _utc(context.start), _utc(context.end)
    confidence = context.confidence
    issues: List[str] = []
    corrected = False

    if start > now_utc:
        issues.append("Start date is in the future; clamped to now")
        start = now_utc
        confidence *= FUTURE_CLAMP_PENALTY
        corrected = True
    if end > now_utc:
        issues.append("End date is in the future; clamped to now")
        end = now_utc
        confidence *= FUTURE_CLAMP_PENALTY
        corrected = True
    if start > end:
        issues.append("Start date is after end date; swapped")
        start, end = end, start
        confidence *= SWAP_PENALTY
        corrected = True
    if end - start > MAX_SPAN:
        issues.append("Date range spans more than 365 days")

    if corrected:
        _, tz = resolve_timezone(context.timezone)
        local_now = now_utc.astimezone(tz)
        start = _utc(start_of_day(start.astimezone(tz)))
        end = _utc(min(end_of_day(end.astimezone(tz)), local_now))

    if issues:
        logger.warning("Date context corrected: %s", "; ".join(issues))

    validated = context.model_copy(
        update={
            "start": start,
            "end": end,
            "confidence": round(confidence, 2),
            "issues": [*context.issues, *issues],
        }
    )
    return DateValidation(is_valid=not issues, issues=issues, context=validated)


class TemporalResolver:
    """Resolve the date range a query refers to."""

    def __init__(
        self,
        fallback: TemporalFallbackResolver | None = None,
        *,
        fallback_timeout_seconds: float | None = None,
        executor: ThreadPoolExecutor | None = None,
    ):
        self.fallback = fallback or NullTemporalFallback()
        self.fallback_timeout_seconds = (
            settings.date_fallback_timeout_seconds if fallback_timeout_seconds is None else fallback_timeout_seconds
        )
        self._executor = executor

    def _consult_fallback(self, query: str, now: datetime, tz_name: str) -> Optional[DateContext]:
        if isinstance(self.fallback, NullTemporalFallback):
            return None
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="date-fallback")
        future = self._executor.submit(self.fallback.extract, query, now, tz_name)
        try:
            return future.result(timeout=self.fallback_timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.warning("Date fallback timed out after %.1fs; keeping fast-path result", self.fallback_timeout_seconds)
        except Exception as exc:
            logger.warning("Date fallback failed (%s); keeping fast-path result", exc)
        return None

    def resolve(
        self,
        query: str,
        client_timestamp: datetime | str | None = None,
        timezone: str | None = None,
    ) -> DateContext:
        tz_name, tz = resolve_timezone(timezone)
        now = reference_now(client_timestamp, tz)

        chosen = extract_date_context(query, now, tz_name)
        if should_escalate(query, chosen):
            candidate = self._consult_fallback(query, now, tz_name)
            if candidate is not None and prefer_fallback(chosen, candidate):
                logger.info("Using fallback date context (confidence %.2f)", candidate.confidence)
                chosen = candidate.model_copy(update={"timezone": tz_name, "resolved_by": "fallback"})

        return validate_date_context(chosen, now).context

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
