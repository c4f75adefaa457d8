"""Weighted pattern classification of vehicle-chat queries into intents.

Each intent owns one `PatternGroup`: an ordered tuple of regexes sharing a
single weight. Every regex that matches adds the weight to the intent's score;
the best-scoring intent wins and its score is normalised into a confidence.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Pattern, Sequence, Tuple

from .config import settings
from .domain import Intent, IntentType
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="intent_classifier")

MAX_KEYWORDS = 5
MIN_KEYWORD_LENGTH = 3


def _compile(*patterns: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


@dataclass(frozen=True)
class PatternGroup:
    """Weighted regex set for one intent, plus the data needs it implies."""
    patterns: Tuple[Pattern[str], ...]
    weight: int
    requires_fresh_data: bool = False
    requires_history: bool = False


INTENT_PATTERNS: Dict[IntentType, PatternGroup] = {
    IntentType.LOCATION: PatternGroup(
        patterns=_compile(
            r"\b(where|location|position|address|place|gps|coordinates?)\b",
            r"\b(current|now|real-?time|live)\s+(location|position|status)",
            r"\b(find|locate|show|tell)\b.*\b(me|location|position|where)\b",
            r"\b(parked|stopped|stationed)\b",
            r"\b(lat(itude)?|lon(gitude)?)\b",
            r"\b(map|navigate|directions?)\b",
        ),
        weight=10,
        requires_fresh_data=True,
    ),
    IntentType.TRIP: PatternGroup(
        patterns=_compile(
            r"\b(trips?|journeys?|route|drive|travel)\b",
            r"\b(last|recent|previous|latest)\s+(trip|journey|drive)",
            r"\b(distance|how far|miles?|km|mileage)\s+(traveled|travelled|driven|went)",
            r"\bwhen\b.*?\b(go|went|drive|left|arrive)",
            r"\btrip\b.*?\b(history|log|record)",
        ),
        weight=9,
        requires_history=True,
    ),
    IntentType.STATS: PatternGroup(
        patterns=_compile(
            r"\b(stats?|statistics|analytics|metrics|performance)\b",
            r"\b(total|overall|average|avg)\s+(distance|mileage|speed|trips?)",
            r"\b(daily|weekly|monthly)\s+(mileage|distance|trips?)",
            r"\b(fuel|consumption|efficiency|usage)\b",
            r"\b(chart|graph|report|summary)\b",
        ),
        weight=8,
        requires_history=True,
    ),
    IntentType.MAINTENANCE: PatternGroup(
        patterns=_compile(
            r"\b(health|status|condition|diagnostics?|check)\b",
            r"\b(battery|engine|ignition|oil|tires?|tyres?|brakes?)\b",
            r"\b(alert|alarm|warning|error|issue|problem)s?\b",
            r"\b(maintenance|service|repair|fix)\b",
            r"\b(fault|malfunction|broken|damaged)\b",
            r"\b(predict|forecast)\b.*?\b(maintenance|service)\b",
        ),
        weight=9,
        requires_fresh_data=True,
        requires_history=True,
    ),
    IntentType.CONTROL: PatternGroup(
        patterns=_compile(
            r"\b(set|enable|disable|turn on|turn off|configure)\b",
            r"\b(command|control|execute|run)\b",
            r"\b(speed limit|geofence|alert|notification)s?\b",
            r"\b(lock|unlock|start|stop|shutdown|immobili[sz]e)\b",
            r"\b(setting|preference|configuration|option)s?\b",
            r"\b(set|change|update|adjust|raise|lower)\b.*\b(to|at)\s+\d+",
            r"\b(limit|threshold|cap)\b",
        ),
        weight=10,
    ),
    IntentType.HISTORY: PatternGroup(
        patterns=_compile(
            r"\b(history|past|previous|earlier|before)\b",
            r"\b(yesterday|yesternight|last\s+night)\b",
            r"\b(last|past)\s+(week|month|year|few\s+days)\b",
            r"\b(\d+)\s*(days?|hours?|weeks?|months?)\s*ago\b",
            r"\b(on|this|last)\s+(monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
            r"\bwhen\b.*?\b(was|did|happened)\b",
            r"\b(event|record|log|archive)s?\b",
            r"\b(did|have|had)\s+(you|i|we|the\s+car)\s+(move|go|drive|travel|leave)\b",
            r"\bhow\s+(far|much)\s+(did|have)\s+(you|i|we)\s+(travel|drive|go|move)\b",
            r"\b(any|were\s+there)\s+(trips?|journeys?|drives?)\b",
            r"\bwhere\s+(did|have)\s+(you|the\s+car)\s+(go|been|travel)\b",
        ),
        weight=9,
        requires_history=True,
    ),
    IntentType.DRIVER: PatternGroup(
        patterns=_compile(
            r"\b(driver|operator|user|person|who)\b",
            r"\b(assigned|driving|operating)\b",
            r"\b(phone|contact|license|licence|name)\b",
            r"\bwho\b.*?\b(driving|assigned|using)\b",
        ),
        weight=8,
    ),
    IntentType.GENERAL: PatternGroup(
        patterns=_compile(
            r"\b(hello|hi|hey|greetings?|good (morning|afternoon|evening))\b",
            r"\b(how are you|what'?s up|how'?s it going)\b",
            r"\b(thank|thanks|appreciate)\b",
            r"\b(help|assist|support|explain)\b",
            r"\b(can you|are you able|do you know)\b",
        ),
        weight=5,
    ),
}

_unmapped = set(IntentType) - set(INTENT_PATTERNS)
if _unmapped:  # pragma: no cover - guards edits to IntentType
    raise RuntimeError(f"Intent types without patterns: {sorted(t.value for t in _unmapped)}")

REALTIME_PATTERNS = _compile(
    r"\b(current|now|right now|at this moment)\b",
    r"\b(real-?time|live|fresh|latest)\b",
    r"\b(exactly|precise|accurate)\b",
)


@dataclass
class _Score:
    score: int = 0
    keywords: List[str] = field(default_factory=list)


def _score_group(lowered: str, group: PatternGroup) -> _Score:
    """Accumulate weight and matched substrings for one intent."""
    result = _Score()
    for pattern in group.patterns:
        match = pattern.search(lowered)
        if not match:
            continue
        result.score += group.weight
        for text in (match.group(0), *match.groups()):
            if text and len(text) >= MIN_KEYWORD_LENGTH:
                result.keywords.append(text)
    return result


def _top_keywords(keywords: Sequence[str]) -> List[str]:
    """Deduplicate keeping first occurrence, capped at MAX_KEYWORDS."""
    return list(dict.fromkeys(keywords))[:MAX_KEYWORDS]


def classify_intent(query: str, *, confidence_scale: float | None = None) -> Intent:
    """Classify a single query into an `Intent`.

    Confidence is ``min(top_score / confidence_scale, 1.0)``; the scale
    approximates the score of a strong multi-pattern match. Results below
    ``settings.intent_min_confidence`` fall back to ``general``.
    """
    scale = confidence_scale or settings.intent_confidence_scale
    lowered = (query or "").lower()

    scores = {intent_type: _score_group(lowered, group) for intent_type, group in INTENT_PATTERNS.items()}

    top_type = IntentType.GENERAL
    top_score = 0
    for intent_type in IntentType:
        if scores[intent_type].score > top_score:
            top_type = intent_type
            top_score = scores[intent_type].score

    confidence = round(min(top_score / scale, 1.0), 2)
    if confidence < settings.intent_min_confidence:
        top_type = IntentType.GENERAL

    group = INTENT_PATTERNS[top_type]
    intent = Intent(
        type=top_type,
        confidence=confidence,
        requires_fresh_data=group.requires_fresh_data,
        requires_history=group.requires_history,
        matched_keywords=_top_keywords(scores[top_type].keywords),
    )
    logger.debug("Classified %r as %s (%.2f)", query[:80] if query else "", intent.type.value, intent.confidence)
    return intent


def classify_conversation_intent(queries: Sequence[str]) -> Intent:
    """Aggregate per-message intents, weighting later messages more heavily.

    Message ``i`` (oldest first) gets weight ``1 + 0.2 * i``. Each intent
    accumulates ``confidence * weight``; the winner's total is normalised by
    the sum of weights, the most a single intent could score.
    """
    if not queries:
        return classify_intent("")

    weights = [1 + i * 0.2 for i in range(len(queries))]
    intents = [classify_intent(q) for q in queries]

    totals: Dict[IntentType, float] = {}
    keywords: Dict[IntentType, List[str]] = {}
    for intent, weight in zip(intents, weights):
        totals[intent.type] = totals.get(intent.type, 0.0) + intent.confidence * weight
        keywords.setdefault(intent.type, []).extend(intent.matched_keywords)

    top_type = IntentType.GENERAL
    top_total = 0.0
    for intent_type in IntentType:
        if totals.get(intent_type, 0.0) > top_total:
            top_type = intent_type
            top_total = totals[intent_type]

    group = INTENT_PATTERNS[top_type]
    return Intent(
        type=top_type,
        confidence=round(min(top_total / sum(weights), 1.0), 2),
        requires_fresh_data=group.requires_fresh_data,
        requires_history=group.requires_history,
        matched_keywords=_top_keywords(keywords.get(top_type, [])),
    )


def requires_fresh_data(query: str, intent: Intent | None = None) -> bool:
    """Stricter freshness check than `Intent.requires_fresh_data`.

    True for confident location/maintenance questions, or whenever the text
    carries an explicit real-time marker, whatever the primary intent.
    """
    intent = intent or classify_intent(query)
    if intent.type in (IntentType.LOCATION, IntentType.MAINTENANCE) and intent.confidence > 0.5:
        return True
    return any(p.search(query or "") for p in REALTIME_PATTERNS)
