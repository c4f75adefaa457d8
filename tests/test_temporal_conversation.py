from datetime import date

from telemetry_assistant.temporal.conversation import (
    ChatMessage,
    extract_temporal_references,
    find_temporal_reference,
    resolve_date_reference,
)
from telemetry_assistant.temporal.fast_path import fast_path

HISTORY = [
    {"role": "user", "content": "Where did the car go yesterday?", "created_at": "2026-01-14T09:00:00Z"},
    {"role": "assistant", "content": "It went to Ikeja yesterday.", "created_at": "2026-01-14T09:00:05Z"},
    {"role": "user", "content": "And 3 days ago?", "created_at": "2026-01-15T09:00:00Z"},
    {"role": "user", "content": "Thanks!", "created_at": "2026-01-15T09:01:00Z"},
]


def test_find_temporal_reference():
    assert find_temporal_reference("Any trips LAST  week?") == "last week"
    assert find_temporal_reference("what about that day") == "that day"
    assert find_temporal_reference("lock the doors") is None


def test_references_resolve_relative_to_message_time():
    refs = extract_temporal_references(HISTORY, timezone="Africa/Lagos")
    assert refs.resolved_dates == {"yesterday": date(2026, 1, 13), "3 days ago": date(2026, 1, 12)}
    # newest resolved mention
    assert refs.date_aliases["that day"] == date(2026, 1, 12)
    assert [entry.day for entry in refs.timeline] == [date(2026, 1, 15), date(2026, 1, 14)]
    assert refs.recent_queries[0].reference == "3 days ago"


def test_assistant_messages_are_ignored():
    refs = extract_temporal_references(HISTORY[1:2], timezone="Africa/Lagos")
    assert refs.resolved_dates == {}
    assert refs.timeline == []


def test_current_context_links_to_earlier_mention():
    current = fast_path("yesterday", "2026-01-16T09:00:00Z", "Africa/Lagos")
    refs = extract_temporal_references(HISTORY, current, timezone="Africa/Lagos")
    assert refs.date_aliases["that day"] == date(2026, 1, 13)
    assert refs.recent_queries[0].query == "current query"
    assert refs.recent_queries[0].resolved_date == date(2026, 1, 15)


def test_unresolvable_phrase_is_still_on_the_timeline():
    messages = [ChatMessage(role="user", content="what about that day", created_at="2026-01-15T09:00:00Z")]
    refs = extract_temporal_references(messages, timezone="Africa/Lagos")
    assert refs.resolved_dates == {}
    assert refs.timeline[0].events == ['User asked about "that day" (resolved to unresolved)']


def test_resolve_date_reference_lookup_order():
    refs = extract_temporal_references(HISTORY, timezone="Africa/Lagos")
    assert resolve_date_reference("Yesterday", refs) == date(2026, 1, 13)
    assert resolve_date_reference("that day", refs) == date(2026, 1, 12)
    assert resolve_date_reference("last month", refs) is None
    assert resolve_date_reference("last month", refs, fallback=date(2025, 12, 1)) == date(2025, 12, 1)
