"""Link date phrases across a conversation.

Earlier user messages are re-resolved relative to the moment each was sent,
so "yesterday" asked last Tuesday maps to last Monday rather than to today's
yesterday. The result lets a follow-up such as "what about that day?" be
pinned to a concrete date.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..domain import DateContext
from .fast_path import extract_date_context, parse_timestamp, resolve_timezone
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="temporal/conversation")

MAX_ENTRIES = 10
THAT_DAY = "that day"

TEMPORAL_REFERENCE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(yesterday|yesternight|last\s+night)\b",
        r"\b(today|this\s+morning|this\s+afternoon|tonight)\b",
        r"\b(last|previous)\s+week\b",
        r"\b(this|current)\s+week\b",
        r"\b(last|previous)\s+month\b",
        r"\b(this|current)\s+month\b",
        r"\b\d+\s*days?\s*ago\b",
        r"\b(?:(?:on|last|this)\s+)?(monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
        r"\b(that|this)\s+(day|time|morning|afternoon|evening)\b",
    )
]


class ChatMessage(BaseModel):
    role: str
    content: str
    created_at: datetime


class TemporalLink(BaseModel):
    query: str
    reference: str
    resolved_date: date
    timestamp: datetime


class TimelineEntry(BaseModel):
    day: date
    events: List[str] = Field(default_factory=list)


class TemporalReferences(BaseModel):
    """Date phrases seen in a conversation and the days they pointed at."""
    resolved_dates: Dict[str, date] = Field(default_factory=dict)
    date_aliases: Dict[str, date] = Field(default_factory=dict)
    timeline: List[TimelineEntry] = Field(default_factory=list)
    recent_queries: List[TemporalLink] = Field(default_factory=list)


def find_temporal_reference(text: str) -> Optional[str]:
    """First date phrase in `text`, lower-cased, or None."""
    for pattern in TEMPORAL_REFERENCE_PATTERNS:
        match = pattern.search(text or "")
        if match:
            return re.sub(r"\s+", " ", match.group(0).lower()).strip()
    return None


def extract_temporal_references(
    messages: Iterable[ChatMessage | dict],
    current: DateContext | None = None,
    *,
    timezone: str | None = None,
    max_entries: int = MAX_ENTRIES,
) -> TemporalReferences:
    """Collect resolved date phrases from user messages, newest first."""
    tz_name, tz = resolve_timezone(timezone)
    parsed = [m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m) for m in messages]
    parsed.sort(key=lambda m: parse_timestamp(m.created_at), reverse=True)

    refs = TemporalReferences()
    by_day: Dict[date, List[str]] = {}

    for message in parsed:
        if message.role != "user":
            continue
        reference = find_temporal_reference(message.content)
        if reference is None:
            continue
        sent_at = parse_timestamp(message.created_at).astimezone(tz)
        context = extract_date_context(reference, sent_at, tz_name)
        resolved: Optional[date] = None
        if context.has_date_reference:
            resolved = context.start.astimezone(tz).date()
            # newest mention of a phrase wins
            refs.resolved_dates.setdefault(reference, resolved)
            refs.recent_queries.append(
                TemporalLink(query=message.content[:100], reference=reference, resolved_date=resolved, timestamp=sent_at)
            )
        label = resolved.isoformat() if resolved else "unresolved"
        by_day.setdefault(sent_at.date(), []).append(f'User asked about "{reference}" (resolved to {label})')

    if refs.recent_queries:
        refs.date_aliases[THAT_DAY] = refs.recent_queries[0].resolved_date

    if current is not None and current.has_date_reference:
        key = current.human_readable.lower()
        if key in refs.resolved_dates:
            refs.date_aliases[THAT_DAY] = refs.resolved_dates[key]
        refs.recent_queries.insert(
            0,
            TemporalLink(
                query="current query",
                reference=key,
                resolved_date=current.start.astimezone(tz).date(),
                timestamp=current.end,
            ),
        )

    refs.timeline = [TimelineEntry(day=d, events=e) for d, e in sorted(by_day.items(), reverse=True)][:max_entries]
    refs.recent_queries = refs.recent_queries[:max_entries]
    logger.debug("Extracted %d temporal references", len(refs.resolved_dates))
    return refs


def resolve_date_reference(reference: str, refs: TemporalReferences, fallback: date | None = None) -> Optional[date]:
    """Look up a phrase in resolved dates, then aliases, then recent queries."""
    key = reference.lower().strip()
    if key in refs.resolved_dates:
        return refs.resolved_dates[key]
    if key in refs.date_aliases:
        return refs.date_aliases[key]
    for link in refs.recent_queries:
        if link.reference == key:
            return link.resolved_date
    return fallback
