import unittest
from datetime import datetime, timedelta, timezone

from telemetry_assistant.domain import DataQuality, DateContext, Period, PositionRecord, TripRecord
from telemetry_assistant.telemetry_validator import validate_position, validate_telemetry, validate_trip

T0 = datetime(2026, 1, 14, 8, 0, tzinfo=timezone.utc)


def clean_trip(**overrides):
    data = {
        "id": "trip-1",
        "start_time": T0,
        "end_time": T0 + timedelta(minutes=20),
        "start_latitude": 6.5244,
        "start_longitude": 3.3792,
        "end_latitude": 6.6018,
        "end_longitude": 3.3515,
        "distance_km": 10.0,
        "duration_seconds": 1200,
        "max_speed": 60,
        "avg_speed": 30,
    }
    data.update(overrides)
    return data


def position(lat, lon, speed=40.0, minutes=0):
    return {"latitude": lat, "longitude": lon, "speed": speed, "gps_time": T0 + timedelta(minutes=minutes)}


class TestTripChecks(unittest.TestCase):
    def test_clean_trip_is_high_quality(self):
        trip = validate_trip(TripRecord(**clean_trip()))
        self.assertEqual(trip.quality, DataQuality.HIGH)
        self.assertEqual(trip.confidence, 1.0)
        self.assertEqual(trip.issues, [])
        self.assertFalse(trip.is_ghost)

    def test_zero_duration_trip_is_ghost(self):
        trip = validate_trip(TripRecord(**clean_trip(end_time=T0, duration_seconds=0, distance_km=0,
                                                     end_latitude=6.5244, end_longitude=3.3792)))
        self.assertTrue(trip.is_ghost)
        self.assertEqual(trip.confidence, 0.0)
        self.assertEqual(trip.quality, DataQuality.LOW)

    def test_gps_jump_is_ghost(self):
        trip = validate_trip(TripRecord(**clean_trip(duration_seconds=60, end_time=T0 + timedelta(seconds=60))))
        # 10 km in a minute is 600 km/h
        self.assertTrue(trip.is_ghost)
        self.assertTrue(any("unrealistic implied speed" in issue for issue in trip.issues))

    def test_long_idle_with_no_distance_is_not_ghost(self):
        trip = validate_trip(TripRecord(**clean_trip(distance_km=0)))
        self.assertFalse(trip.is_ghost)

    def test_missing_times_force_low(self):
        trip = validate_trip(TripRecord(**clean_trip(start_time=None)))
        self.assertEqual(trip.quality, DataQuality.LOW)
        self.assertIn("Missing start_time or end_time", trip.issues)

    def test_out_of_range_coordinates_force_low(self):
        trip = validate_trip(TripRecord(**clean_trip(end_latitude=95.0)))
        self.assertEqual(trip.quality, DataQuality.LOW)
        self.assertIn("Invalid end coordinates", trip.issues)

    def test_distance_mismatch_downgrades(self):
        trip = validate_trip(TripRecord(**clean_trip(distance_km=20.0)))
        self.assertEqual(trip.quality, DataQuality.MEDIUM)
        self.assertAlmostEqual(trip.confidence, 0.9)
        self.assertTrue(trip.issues[0].startswith("Distance mismatch"))

    def test_missing_distance_costs_confidence(self):
        trip = validate_trip(TripRecord(**clean_trip(distance_km=None)))
        self.assertAlmostEqual(trip.confidence, 0.9)
        self.assertIn("Missing distance_km", trip.issues)

    def test_penalties_accumulate_into_low(self):
        trip = validate_trip(TripRecord(**clean_trip(duration_seconds=1500, max_speed=350, distance_km=-1.0,
                                                     start_latitude=None)))
        self.assertLess(trip.confidence, 0.6)
        self.assertEqual(trip.quality, DataQuality.LOW)

    def test_duplicates_are_flagged(self):
        first = TripRecord(**clean_trip())
        second = TripRecord(**clean_trip(id="trip-2", start_time=T0 + timedelta(seconds=30),
                                         end_time=T0 + timedelta(minutes=20, seconds=30)))
        trip = validate_trip(first, [first, second])
        self.assertIn("Possible duplicate trip (1 similar trips found)", trip.issues)
        self.assertAlmostEqual(trip.confidence, 0.9)


class TestPositionChecks(unittest.TestCase):
    def test_null_island_with_unrealistic_speed(self):
        result = validate_position(PositionRecord(**position(0.0, 0.0, speed=400)))
        self.assertEqual(result.quality, DataQuality.LOW)
        self.assertTrue(any("null island" in issue.lower() for issue in result.issues))
        self.assertTrue(any(issue.startswith("Unrealistic speed") for issue in result.issues))

    def test_missing_coordinate(self):
        result = validate_position(PositionRecord(**position(6.5, None)))
        self.assertEqual(result.quality, DataQuality.LOW)
        self.assertIn("Missing coordinates", result.issues)

    def test_speed_and_time_only_downgrade(self):
        result = validate_position(PositionRecord(latitude=6.5, longitude=3.3, speed=-5))
        self.assertEqual(result.quality, DataQuality.MEDIUM)
        self.assertEqual(len(result.issues), 2)

    def test_clean_position(self):
        result = validate_position(PositionRecord(**position(6.5, 3.3)))
        self.assertEqual(result.quality, DataQuality.HIGH)


class TestValidateTelemetry(unittest.TestCase):
    def test_clean_batch_is_high(self):
        dataset = validate_telemetry([clean_trip()], [position(6.5244, 3.3792), position(6.6018, 3.3515, minutes=20)])
        self.assertEqual(dataset.overall_quality, DataQuality.HIGH)
        self.assertEqual(dataset.summary.total_distance_km, 10.0)
        self.assertEqual(dataset.summary.total_duration_seconds, 1200)
        self.assertEqual(dataset.summary.cross_validation_warnings, [])

    def test_ghost_trip_excluded_from_sums(self):
        ghost = clean_trip(id="ghost", start_time=T0 + timedelta(hours=2), end_time=T0 + timedelta(hours=2),
                           duration_seconds=0, distance_km=0)
        dataset = validate_telemetry([clean_trip(), ghost], [])
        self.assertEqual(dataset.summary.ghost_trips, 1)
        self.assertEqual(dataset.summary.total_trips, 2)
        self.assertEqual(dataset.summary.valid_trips, 1)
        self.assertEqual(dataset.summary.total_distance_km, 10.0)
        self.assertEqual(dataset.summary.total_duration_seconds, 1200)
        self.assertEqual(dataset.overall_quality, DataQuality.LOW)
        self.assertEqual(len(dataset.trips), 2)

    def test_discard_ghosts(self):
        ghost = clean_trip(id="ghost", start_time=T0 + timedelta(hours=2), end_time=T0 + timedelta(hours=2),
                           duration_seconds=0, distance_km=0)
        dataset = validate_telemetry([clean_trip(), ghost], [], discard_ghosts=True)
        self.assertEqual([t.id for t in dataset.trips], ["trip-1"])
        self.assertEqual(dataset.summary.ghost_trips, 1)

    def test_distance_mismatch_against_positions(self):
        out = clean_trip(id="out", start_latitude=6.5, start_longitude=3.3, end_latitude=6.95, end_longitude=3.3,
                         distance_km=50.0, end_time=T0 + timedelta(hours=1), duration_seconds=3600)
        back = clean_trip(id="back", start_time=T0 + timedelta(hours=2), end_time=T0 + timedelta(hours=3),
                          start_latitude=6.95, start_longitude=3.3, end_latitude=6.5, end_longitude=3.3,
                          distance_km=50.0, duration_seconds=3600)
        dataset = validate_telemetry([out, back], [position(6.5, 3.3), position(6.95, 3.3, minutes=60)])
        warnings = dataset.summary.cross_validation_warnings
        self.assertEqual(len(warnings), 1)
        self.assertTrue(warnings[0].startswith("Distance mismatch"))
        self.assertNotEqual(dataset.overall_quality, DataQuality.HIGH)
        self.assertIn(warnings[0], dataset.summary.issues)

    def test_low_position_taints_batch(self):
        dataset = validate_telemetry([clean_trip()], [position(6.5244, 3.3792), position(0.0, 0.0)])
        self.assertEqual(dataset.overall_quality, DataQuality.LOW)
        self.assertEqual(dataset.summary.valid_positions, 1)

    def test_coverage_warnings_against_requested_range(self):
        ctx = DateContext(
            has_date_reference=True,
            period=Period.YESTERDAY,
            start=datetime(2026, 1, 14, 0, 0, tzinfo=timezone.utc),
            end=datetime(2026, 1, 14, 23, 59, tzinfo=timezone.utc),
            human_readable="yesterday",
            timezone="UTC",
            confidence=0.95,
        )
        dataset = validate_telemetry([clean_trip()], [], ctx)
        warnings = dataset.summary.cross_validation_warnings
        self.assertEqual(len(warnings), 2)
        self.assertTrue(warnings[0].startswith("Earliest trip"))
        self.assertTrue(warnings[1].startswith("Latest trip"))
        self.assertEqual(dataset.overall_quality, DataQuality.MEDIUM)

    def test_no_coverage_check_without_date_reference(self):
        ctx = DateContext(
            has_date_reference=False,
            period=Period.NONE,
            start=T0,
            end=T0,
            human_readable="current",
            timezone="UTC",
        )
        dataset = validate_telemetry([clean_trip()], [], ctx)
        self.assertEqual(dataset.summary.cross_validation_warnings, [])

    def test_accepts_raw_mappings_with_extra_fields(self):
        raw = clean_trip(start_time="2026-01-14T08:00:00Z", end_time="2026-01-14T08:20:00Z", device_id="abc")
        dataset = validate_telemetry([raw], [])
        self.assertEqual(dataset.trips[0].quality, DataQuality.HIGH)

    def test_empty_batch(self):
        dataset = validate_telemetry([], [])
        self.assertEqual(dataset.overall_quality, DataQuality.HIGH)
        self.assertEqual(dataset.summary.total_trips, 0)


if __name__ == "__main__":
    unittest.main()
