from __future__ import annotations

import unittest

from homeview.core.history import (
    HistoryShape,
    detect_history_shape,
    is_representable_timestamp,
    normalize_history,
    parse_iso_seconds,
    select_raw_points,
)


class TestHistoryShape(unittest.TestCase):
    def test_detects_nested_flat_and_empty(self) -> None:
        self.assertEqual(HistoryShape.NESTED, detect_history_shape([[{"s": "1", "lu": 1}]]))
        self.assertEqual(HistoryShape.FLAT, detect_history_shape([{"s": "1", "lu": 1}]))
        self.assertEqual(HistoryShape.EMPTY, detect_history_shape([]))
        self.assertEqual(HistoryShape.EMPTY, detect_history_shape([[]]))
        self.assertEqual(HistoryShape.EMPTY, detect_history_shape(None))

    def test_unknown_shape_is_not_an_error(self) -> None:
        self.assertEqual(HistoryShape.UNKNOWN, detect_history_shape({"message": "nope"}))
        self.assertEqual([], normalize_history({"message": "nope"}))
        self.assertEqual([], normalize_history("garbage"))

    def test_nested_payload_prefers_matching_entity_list(self) -> None:
        payload = [
            [{"entity_id": "sensor.a", "s": "1", "lu": 10}],
            [{"entity_id": "sensor.b", "s": "2", "lu": 20}, {"s": "3", "lu": 30}],
        ]
        picked = select_raw_points(payload, "sensor.b")
        self.assertEqual(2, len(picked))
        self.assertEqual("sensor.b", picked[0]["entity_id"])

    def test_nested_payload_falls_back_to_first_list(self) -> None:
        payload = [[{"s": "1", "lu": 10}], [{"s": "2", "lu": 20}]]
        points = normalize_history(payload, "sensor.unknown")
        self.assertEqual(["1"], [p.s for p in points])


class TestNormalizeHistory(unittest.TestCase):
    def test_empty_variants_normalize_to_empty(self) -> None:
        self.assertEqual([], normalize_history([]))
        self.assertEqual([], normalize_history([[]]))
        self.assertEqual([], normalize_history(None))

    def test_sorts_ascending_by_timestamp(self) -> None:
        payload = [[{"s": "a", "lu": 500}, {"s": "b", "lu": 100}, {"s": "c", "lu": 300}]]
        points = normalize_history(payload)
        self.assertEqual([100.0, 300.0, 500.0], [p.lu for p in points])
        self.assertEqual(["b", "c", "a"], [p.s for p in points])

    def test_drops_item_without_any_state(self) -> None:
        payload = [{"s": "1", "lu": 1}, {"lu": 2}, {"state": "3", "lu": 3}]
        points = normalize_history(payload)
        self.assertEqual(len(payload) - 1, len(points))
        self.assertEqual(["1", "3"], [p.s for p in points])

    def test_drops_item_without_resolvable_timestamp(self) -> None:
        payload = [
            {"s": "1", "lu": 1},
            {"s": "2"},
            {"s": "3", "last_updated": "not-a-date"},
            {"s": "4", "lu": float("nan")},
            {"s": "5", "lu": True},
        ]
        points = normalize_history(payload)
        self.assertEqual(["1"], [p.s for p in points])

    def test_drops_item_with_out_of_range_timestamp(self) -> None:
        payload = [
            {"s": "1", "lu": 1},
            {"s": "2", "lu": 10**400},
            {"s": "3", "lu": 1e12},
            {"s": "4", "lu": -1e12},
            {"s": "5", "last_updated": "0001-01-01T00:00:00+01:00"},
            {"s": "6", "last_updated": "9999-12-31T23:59:59-01:00"},
            {"s": "7", "lu": 2},
        ]
        points = normalize_history(payload)
        self.assertEqual(["1", "7"], [p.s for p in points])

    def test_out_of_range_lu_falls_back_to_iso_field(self) -> None:
        points = normalize_history([{"s": "x", "lu": 1e12, "last_updated": "2024-01-01T00:00:00Z"}])
        self.assertEqual([1704067200.0], [p.lu for p in points])

    def test_compact_state_wins_over_verbose(self) -> None:
        points = normalize_history([{"s": "compact", "state": "verbose", "lu": 5}])
        self.assertEqual("compact", points[0].s)

    def test_non_string_state_is_stringified(self) -> None:
        points = normalize_history([{"s": 21.5, "lu": 5}])
        self.assertEqual("21.5", points[0].s)

    def test_verbose_timestamps_fall_back_in_order(self) -> None:
        payload = [
            {"state": "a", "last_updated": "2024-01-01T00:00:10+00:00", "last_changed": "2024-01-01T00:00:00+00:00"},
            {"state": "b", "last_changed": "2024-01-01T00:00:20Z"},
            {"state": "c", "last_updated": "broken", "last_changed": "2024-01-01T00:00:30Z"},
        ]
        points = normalize_history(payload)
        base = 1704067200.0
        self.assertEqual([base + 10, base + 20, base + 30], [p.lu for p in points])

    def test_numeric_lu_wins_over_iso_fields(self) -> None:
        points = normalize_history([{"s": "x", "lu": 42, "last_updated": "2024-01-01T00:00:00Z"}])
        self.assertEqual(42.0, points[0].lu)

    def test_non_mapping_items_are_skipped(self) -> None:
        points = normalize_history([None, "x", 3, {"s": "ok", "lu": 1}])
        self.assertEqual(["ok"], [p.s for p in points])

    def test_ties_keep_scan_order(self) -> None:
        points = normalize_history([{"s": "first", "lu": 7}, {"s": "second", "lu": 7}])
        self.assertEqual(["first", "second"], [p.s for p in points])


class TestParseIsoSeconds(unittest.TestCase):
    def test_naive_timestamp_is_read_as_utc(self) -> None:
        self.assertEqual(1704067200.0, parse_iso_seconds("2024-01-01T00:00:00"))

    def test_offset_is_respected(self) -> None:
        self.assertEqual(1704067200.0, parse_iso_seconds("2024-01-01T02:00:00+02:00"))

    def test_extreme_dates_parse_but_are_not_representable(self) -> None:
        seconds = parse_iso_seconds("0001-01-01T00:00:00+01:00")
        self.assertIsNotNone(seconds)
        self.assertFalse(is_representable_timestamp(seconds))
        self.assertTrue(is_representable_timestamp(1704067200.0))
        self.assertFalse(is_representable_timestamp(float("inf")))

    def test_rejects_non_strings(self) -> None:
        self.assertIsNone(parse_iso_seconds(None))
        self.assertIsNone(parse_iso_seconds(123))
        self.assertIsNone(parse_iso_seconds("  "))


if __name__ == "__main__":
    unittest.main()
