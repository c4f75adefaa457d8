import unittest

from telemetry_assistant.domain import IntentType
from telemetry_assistant.intent_classifier import (
    INTENT_PATTERNS,
    classify_conversation_intent,
    classify_intent,
    requires_fresh_data,
)


class TestClassifyIntent(unittest.TestCase):
    def test_speed_limit_command_is_control(self):
        intent = classify_intent("set speed limit to 80")
        self.assertEqual(intent.type, IntentType.CONTROL)
        self.assertGreater(intent.confidence, 0.6)
        self.assertIn("set", intent.matched_keywords)

    def test_location_question(self):
        intent = classify_intent("where is the car parked right now, show me the location on the map")
        self.assertEqual(intent.type, IntentType.LOCATION)
        self.assertGreater(intent.confidence, 0.6)
        self.assertTrue(intent.requires_fresh_data)

    def test_empty_query_is_general_with_zero_confidence(self):
        intent = classify_intent("")
        self.assertEqual(intent.type, IntentType.GENERAL)
        self.assertEqual(intent.confidence, 0.0)
        self.assertEqual(intent.matched_keywords, [])

    def test_weak_match_falls_back_to_general(self):
        intent = classify_intent("gps")
        # a single location hit scores 10 / 50 = 0.2, above the floor
        self.assertEqual(intent.type, IntentType.LOCATION)
        weak = classify_intent("hi")
        self.assertEqual(weak.type, IntentType.GENERAL)
        self.assertLess(weak.confidence, 0.15)

    def test_ties_resolve_by_declaration_order(self):
        # one location hit (10) and one control hit (10)
        intent = classify_intent("gps command")
        self.assertEqual(intent.type, IntentType.LOCATION)

    def test_custom_confidence_scale(self):
        intent = classify_intent("gps", confidence_scale=10)
        self.assertEqual(intent.confidence, 1.0)

    def test_keywords_are_deduplicated_and_capped(self):
        intent = classify_intent("where where location position address place gps coordinates map parked")
        self.assertLessEqual(len(intent.matched_keywords), 5)
        self.assertEqual(len(intent.matched_keywords), len(set(intent.matched_keywords)))

    def test_trip_history_query(self):
        intent = classify_intent("show my trip history")
        self.assertEqual(intent.type, IntentType.TRIP)
        self.assertTrue(intent.requires_history)

    def test_every_intent_has_patterns(self):
        self.assertEqual(set(INTENT_PATTERNS), set(IntentType))


class TestConversationIntent(unittest.TestCase):
    def test_repeated_query_keeps_single_query_confidence(self):
        single = classify_intent("set speed limit to 80")
        convo = classify_conversation_intent(["set speed limit to 80"] * 3)
        self.assertEqual(convo.type, IntentType.CONTROL)
        self.assertAlmostEqual(convo.confidence, single.confidence, places=2)

    def test_later_messages_weigh_more(self):
        convo = classify_conversation_intent(["gps", "command"])
        # both score 0.2, but the later control message carries weight 1.2
        self.assertEqual(convo.type, IntentType.CONTROL)

    def test_empty_conversation_is_general(self):
        self.assertEqual(classify_conversation_intent([]).type, IntentType.GENERAL)


class TestRequiresFreshData(unittest.TestCase):
    def test_realtime_marker_forces_fresh(self):
        self.assertTrue(requires_fresh_data("what was my latest trip"))

    def test_history_query_is_not_fresh(self):
        self.assertFalse(requires_fresh_data("show my trip history"))

    def test_confident_location_is_fresh(self):
        query = "where is the car parked, show me the location on the map"
        self.assertTrue(requires_fresh_data(query))


if __name__ == "__main__":
    unittest.main()
