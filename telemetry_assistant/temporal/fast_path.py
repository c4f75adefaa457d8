"""Deterministic date-phrase extraction (the resolver's fast path).

Rules are tried in a fixed order and the first match wins. All day
boundaries are computed on the wall clock of the resolved IANA timezone and
then converted to UTC instants. Ranges that include the current day end at
"now" rather than at midnight, so a fast-path result never points into the
future.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import settings
from ..domain import DateContext, Period
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="temporal/fast_path")

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_WEEKDAY_ALT = "|".join(WEEKDAYS)

MONTHS = {
    "january": 1, "jan": 1, "february": 2, "feb": 2, "march": 3, "mar": 3,
    "april": 4, "apr": 4, "may": 5, "june": 6, "jun": 6, "july": 7, "jul": 7,
    "august": 8, "aug": 8, "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10, "november": 11, "nov": 11, "december": 12, "dec": 12,
}
_MONTH_ALT = "|".join(sorted(MONTHS, key=len, reverse=True))

LAST_TRIP_RE = re.compile(r"\b(last|latest|most\s+recent)\s+(trip|journey|drive|travel|ride)\b")
YESTERDAY_RE = re.compile(r"\b(yesterday|yesternight|last\s+night)\b")
TODAY_RE = re.compile(r"\b(today|this\s+morning|this\s+afternoon|this\s+evening|tonight)\b")
DAYS_AGO_RE = re.compile(r"\b(\d+)\s*days?\s*ago\b")
HOURS_AGO_RE = re.compile(r"\b(\d+)\s*hours?\s*ago\b")
LAST_N_DAYS_RE = re.compile(r"\b(last|past)\s+(\d+)\s*days?\b")
THIS_WEEK_RE = re.compile(r"\b(this|current)\s+week\b")
LAST_WEEK_RE = re.compile(r"\b(last\s+week|previous\s+week|past\s+week|week\s+before)\b")
THIS_MONTH_RE = re.compile(r"\b(this|current)\s+month\b")
LAST_MONTH_RE = re.compile(r"\b(last|previous)\s+month\b")
EXPLICIT_DATE_RE = re.compile(
    rf"\b(?P<month>{_MONTH_ALT})\s+(?P<day>\d{{1,2}})(?:st|nd|rd|th)?\b"
    rf"|\b(?P<day2>\d{{1,2}})(?:st|nd|rd|th)?\s+of\s+(?P<month2>{_MONTH_ALT})\b"
)
WEEKDAY_RE = re.compile(rf"\b(?:(on|last|this)\s+)?({_WEEKDAY_ALT})\b")
MOVEMENT_RE = re.compile(r"\b(did|have|had)\s+(you|i|we|the\s+car|the\s+vehicle)\s+(move|travel|go|drive|leave)\b")
TRIP_HISTORY_RE = re.compile(r"\btrip\s+(history|log|records?)\b")

HISTORICAL_MOVEMENT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(did|have|had)\s+(you|i|we|the\s+car|the\s+vehicle)\s+(move|travel|go|drive|left|gone)\b",
        r"\bhow\s+(far|much|many\s+km|many\s+kilometers?|many\s+miles?)\s+(did|have)\b",
        r"\bwhere\s+(did|have)\s+(you|the\s+car|the\s+vehicle)\s+(go|been|travel)\b",
        r"\b(any|were\s+there)\s+(trips?|journeys?|drives?)\b",
        r"\bwhat\s+distance\s+(did|have)\b",
        r"\btravel(led|ed)?\b.*\b(yesterday|last|ago|week|month)\b",
        r"\b(yesterday|last\s+week|last\s+month)\b.*\b(trip|journey|drive|move|travel)\b",
        r"\b(last|latest)\s+(trip|journey)\b",
        r"\btrip\s+(history|log|records?)\b",
    )
]

CONFIDENCE_EXPLICIT_DAY = 0.95
CONFIDENCE_DAYS_AGO = 0.9
CONFIDENCE_WEEK = 0.85
CONFIDENCE_WEEKDAY = 0.7
CONFIDENCE_MATCHED = 0.8
CONFIDENCE_NO_MATCH = 0.5

_EXPLICIT_DAY_RE = re.compile(r"\b(today|yesterday)\b")
_WEEK_PHRASE_RE = re.compile(r"\b(last|previous|past|this|current)\s+week\b")
_WEEKDAY_NAME_RE = re.compile(rf"\b({_WEEKDAY_ALT})\b")


def resolve_timezone(name: str | None) -> Tuple[str, ZoneInfo]:
    """Return (name, ZoneInfo), falling back to the configured default zone."""
    tz_name = name or settings.default_timezone
    try:
        return tz_name, ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; using %s", tz_name, settings.default_timezone)
        return settings.default_timezone, ZoneInfo(settings.default_timezone)


def parse_timestamp(value: datetime | str | None) -> Optional[datetime]:
    """Parse an ISO timestamp (a trailing 'Z' is accepted); naive values are UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt_timezone.utc)
    return value


def reference_now(client_timestamp: datetime | str | None, tz: ZoneInfo) -> datetime:
    """The instant queries are resolved against, on the local wall clock."""
    base = parse_timestamp(client_timestamp) or datetime.now(dt_timezone.utc)
    return base.astimezone(tz)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999999)


@dataclass(frozen=True)
class _Match:
    period: Period
    start: datetime
    end: datetime
    human_readable: str


Rule = Callable[[str, datetime], Optional[_Match]]


def _last_trip(text: str, now: datetime) -> Optional[_Match]:
    # wide search window; the caller picks the latest trip inside it
    if LAST_TRIP_RE.search(text):
        return _Match(Period.LAST_TRIP, start_of_day(now - timedelta(days=30)), now, "last trip")
    return None


def _yesterday(text: str, now: datetime) -> Optional[_Match]:
    if YESTERDAY_RE.search(text):
        day = now - timedelta(days=1)
        return _Match(Period.YESTERDAY, start_of_day(day), end_of_day(day), "yesterday")
    return None


def _today(text: str, now: datetime) -> Optional[_Match]:
    if TODAY_RE.search(text):
        return _Match(Period.TODAY, start_of_day(now), now, "today")
    return None


def _units_ago(text: str, now: datetime) -> Optional[_Match]:
    m = DAYS_AGO_RE.search(text)
    if m:
        days = int(m.group(1))
        day = now - timedelta(days=days)
        return _Match(Period.CUSTOM, start_of_day(day), end_of_day(day), f"{days} day{'s' if days != 1 else ''} ago")
    m = HOURS_AGO_RE.search(text)
    if m:
        hours = int(m.group(1))
        return _Match(Period.CUSTOM, now - timedelta(hours=hours), now, f"last {hours} hour{'s' if hours != 1 else ''}")
    return None


def _last_n_days(text: str, now: datetime) -> Optional[_Match]:
    m = LAST_N_DAYS_RE.search(text)
    if m:
        days = int(m.group(2))
        return _Match(Period.CUSTOM, start_of_day(now - timedelta(days=days)), now, f"last {days} days")
    return None


def _weeks(text: str, now: datetime) -> Optional[_Match]:
    # weeks start on Monday; weekday() is 0 for Monday, 6 for Sunday
    since_monday = now.weekday()
    if THIS_WEEK_RE.search(text):
        return _Match(Period.THIS_WEEK, start_of_day(now - timedelta(days=since_monday)), now, "this week")
    if LAST_WEEK_RE.search(text):
        monday = now - timedelta(days=since_monday + 7)
        sunday = now - timedelta(days=since_monday + 1)
        return _Match(Period.LAST_WEEK, start_of_day(monday), end_of_day(sunday), "last week")
    return None


def _months(text: str, now: datetime) -> Optional[_Match]:
    first_this_month = start_of_day(now.replace(day=1))
    if THIS_MONTH_RE.search(text):
        return _Match(Period.THIS_MONTH, first_this_month, now, "this month")
    if LAST_MONTH_RE.search(text):
        last_day_prev = first_this_month - timedelta(days=1)
        return _Match(Period.LAST_MONTH, start_of_day(last_day_prev.replace(day=1)), end_of_day(last_day_prev), "last month")
    return None


def _explicit_date(text: str, now: datetime) -> Optional[_Match]:
    m = EXPLICIT_DATE_RE.search(text)
    if not m:
        return None
    month = MONTHS[m.group("month") or m.group("month2")]
    day = int(m.group("day") or m.group("day2"))
    # most recent year in which the date exists and is not in the future;
    # february 29 can sit up to eight years back
    for year in range(now.year, now.year - 9, -1):
        try:
            target = now.replace(year=year, month=month, day=day)
        except ValueError:
            continue
        if start_of_day(target) <= now:
            break
    else:
        logger.debug("Ignoring impossible calendar date in %r", m.group(0))
        return None
    return _Match(Period.CUSTOM, start_of_day(target), end_of_day(target), f"on {m.group(0)}")


def _weekday(text: str, now: datetime) -> Optional[_Match]:
    m = WEEKDAY_RE.search(text)
    if not m:
        return None
    qualifier, name = m.group(1), m.group(2)
    days_back = (now.weekday() - WEEKDAYS.index(name)) % 7
    # "this monday" on a Monday means today; otherwise always a past day
    if qualifier == "last":
        days_back = (days_back or 7) + 7
    elif qualifier != "this":
        days_back = days_back or 7
    day = now - timedelta(days=days_back)
    end = now if days_back == 0 else end_of_day(day)
    return _Match(Period.CUSTOM, start_of_day(day), end, f"{qualifier or 'on'} {name}")


def _movement_question(text: str, now: datetime) -> Optional[_Match]:
    if MOVEMENT_RE.search(text):
        return _Match(Period.CUSTOM, now - timedelta(hours=24), now, "recently (last 24 hours)")
    return None


def _trip_history(text: str, now: datetime) -> Optional[_Match]:
    if TRIP_HISTORY_RE.search(text):
        return _Match(Period.CUSTOM, start_of_day(now - timedelta(days=30)), now, "last 30 days")
    return None


RULES: List[Rule] = [
    _last_trip,
    _yesterday,
    _today,
    _units_ago,
    _last_n_days,
    _weeks,
    _months,
    _explicit_date,
    _weekday,
    _movement_question,
    _trip_history,
]


def score_confidence(query: str, has_date_reference: bool) -> float:
    """Static confidence per matched phrase family."""
    if not has_date_reference:
        return CONFIDENCE_NO_MATCH
    text = query.lower()
    if _EXPLICIT_DAY_RE.search(text):
        return CONFIDENCE_EXPLICIT_DAY
    if DAYS_AGO_RE.search(text):
        return CONFIDENCE_DAYS_AGO
    if _WEEK_PHRASE_RE.search(text):
        return CONFIDENCE_WEEK
    if _WEEKDAY_NAME_RE.search(text):
        return CONFIDENCE_WEEKDAY
    return CONFIDENCE_MATCHED


def _to_utc(moment: datetime) -> datetime:
    return moment.astimezone(dt_timezone.utc)


def extract_date_context(query: str, now: datetime, tz_name: str) -> DateContext:
    """Run the rule cascade against `query` with a local, timezone-aware `now`."""
    text = (query or "").lower()
    for rule in RULES:
        match = rule(text, now)
        if match is None:
            continue
        return DateContext(
            has_date_reference=True,
            period=match.period,
            start=_to_utc(match.start),
            end=_to_utc(match.end),
            human_readable=match.human_readable,
            timezone=tz_name,
            confidence=score_confidence(text, True),
        )
    return DateContext(
        has_date_reference=False,
        period=Period.NONE,
        start=_to_utc(now),
        end=_to_utc(now),
        human_readable="current",
        timezone=tz_name,
        confidence=CONFIDENCE_NO_MATCH,
    )


def fast_path(query: str, client_timestamp: datetime | str | None = None, timezone: str | None = None) -> DateContext:
    """Resolve `query` deterministically. Same inputs give the same output."""
    tz_name, tz = resolve_timezone(timezone)
    return extract_date_context(query, reference_now(client_timestamp, tz), tz_name)


def is_historical_movement_query(query: str) -> bool:
    """True if the query asks about past movement or trips."""
    return any(p.search(query or "") for p in HISTORICAL_MOVEMENT_PATTERNS)
