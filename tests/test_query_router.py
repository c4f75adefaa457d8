from telemetry_assistant.domain import (
    CacheStrategy,
    DataSourceName,
    Intent,
    IntentType,
    RoutePriority,
)
from telemetry_assistant.query_router import (
    determine_cache_strategy,
    determine_priority,
    estimate_latency,
    optimize_fetch_order,
    route_query,
    routing_cache_key,
    sources_for_intent,
    validate_data_sources,
)


class FixedRandom:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def _sources(decision):
    return [(s.source, s.required) for s in decision.data_sources]


def test_speed_limit_routes_fresh_and_high():
    decision = route_query("set speed limit to 80", "veh-1", rng=FixedRandom(0.0))
    assert decision.intent.type is IntentType.CONTROL
    assert decision.cache_strategy is CacheStrategy.FRESH
    assert decision.priority is RoutePriority.HIGH


def test_baseline_sources_always_present():
    decision = route_query("hello there", "veh-1", rng=FixedRandom(0.0))
    assert _sources(decision)[:2] == [
        (DataSourceName.VEHICLE_INFO, True),
        (DataSourceName.LLM_SETTINGS, False),
    ]


def test_control_reads_settings_uncached():
    sources = sources_for_intent(IntentType.CONTROL, needs_fresh_data=False)
    settings_req = [s for s in sources if s.source is DataSourceName.LLM_SETTINGS][0]
    assert settings_req.required is True
    assert settings_req.use_cache is False


def test_fresh_location_bypasses_gps_cache():
    sources = sources_for_intent(IntentType.LOCATION, needs_fresh_data=True)
    gps = sources[0]
    assert gps.source is DataSourceName.GPS
    assert gps.required and not gps.use_cache


def test_cache_strategy_rules():
    history = Intent(type=IntentType.HISTORY, confidence=0.9)
    maintenance = Intent(type=IntentType.MAINTENANCE, confidence=0.3)
    assert determine_cache_strategy(history, needs_fresh_data=False) is CacheStrategy.CACHED
    assert determine_cache_strategy(history, needs_fresh_data=True) is CacheStrategy.FRESH
    assert determine_cache_strategy(maintenance, needs_fresh_data=False) is CacheStrategy.HYBRID


def test_priority_rules():
    assert determine_priority(Intent(type=IntentType.MAINTENANCE, confidence=0.8), False) is RoutePriority.HIGH
    assert determine_priority(Intent(type=IntentType.MAINTENANCE, confidence=0.5), False) is RoutePriority.NORMAL
    assert determine_priority(Intent(type=IntentType.STATS, confidence=0.9), False) is RoutePriority.LOW
    assert determine_priority(Intent(type=IntentType.DRIVER, confidence=0.9), False) is RoutePriority.NORMAL


def test_estimate_latency_counts_or_skips_optional_sources():
    decision = route_query("set speed limit to 80", "veh-1", rng=FixedRandom(0.0))
    # base 500 + vehicle_info 50 + llm_settings 30 + cached gps 50 + llm_settings 30 + fresh 200
    assert estimate_latency(decision.data_sources, decision.cache_strategy, FixedRandom(0.0)) == 860
    # optional llm_settings and gps dropped
    assert estimate_latency(decision.data_sources, decision.cache_strategy, FixedRandom(0.99)) == 780


def test_optimize_fetch_order_groups_stages():
    sources = sources_for_intent(IntentType.STATS, needs_fresh_data=False)
    decision = route_query("show trip statistics and average speed", "veh-1", rng=FixedRandom(0.0))
    assert decision.intent.type is IntentType.STATS
    stages = optimize_fetch_order(decision.data_sources)
    names = [[s.source for s in stage] for stage in stages]
    assert names == [
        [DataSourceName.VEHICLE_INFO, DataSourceName.LLM_SETTINGS],
        [DataSourceName.POSITION_HISTORY, DataSourceName.GPS],
        [DataSourceName.TRIPS],
    ]
    assert len(sources) == 3


def test_optimize_fetch_order_drops_empty_stages():
    sources = sources_for_intent(IntentType.GENERAL, needs_fresh_data=False)
    stages = optimize_fetch_order(sources)
    assert len(stages) == 1


def test_validate_data_sources_reports_empty_required():
    decision = route_query("set speed limit to 80", "veh-1", rng=FixedRandom(0.0))
    result = validate_data_sources(decision, {"vehicle_info": {"plate": "LAG-123"}, "llm_settings": []})
    assert result.valid is False
    assert result.missing == [DataSourceName.LLM_SETTINGS]

    ok = validate_data_sources(decision, {"vehicle_info": {"plate": "LAG-123"}, "llm_settings": {"tone": "calm"}})
    assert ok.valid is True
    assert ok.missing == []


def test_routing_cache_key_normalizes_query():
    assert routing_cache_key("Where is my car?", "veh-1") == "routing:veh-1:location:where is my car"
