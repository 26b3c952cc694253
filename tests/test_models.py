"""Tests for data model classes."""

import unittest

from leadscrape.models import NO_PHONE, Business, LogEntry, LogLevel, ProgressState


class TestBusiness(unittest.TestCase):
    """Verify Business records and their export shape."""

    def test_defaults(self):
        business = Business(name="Acme")
        self.assertEqual(business.provider, "")
        self.assertTrue(business.id)
        self.assertNotEqual(business.id, Business(name="Acme").id)

    def test_lookup_key(self):
        self.assertTrue(Business(name="a", phone="011 555 0100").has_lookup_key)
        self.assertFalse(Business(name="a", phone="").has_lookup_key)
        self.assertFalse(Business(name="a", phone="   ").has_lookup_key)
        self.assertFalse(Business(name="a", phone=NO_PHONE).has_lookup_key)

    def test_to_row_column_order(self):
        row = Business(name="Acme", maps_url="u", phone="p", town="Springs").to_row()
        self.assertEqual(list(row), ["maps_url", "name", "phone", "provider", "address", "category", "notes", "town"])

    def test_dict_round_trip_keeps_id(self):
        business = Business(name="Acme", phone="011", category="Plumbers")
        copy = Business.from_dict(business.to_dict())
        self.assertEqual(copy, business)

    def test_from_dict_tolerates_missing_fields(self):
        business = Business.from_dict({"name": "Acme", "phone": None})
        self.assertEqual(business.phone, "")
        self.assertTrue(business.id)


class TestProgressState(unittest.TestCase):
    """Percentage and remaining-time arithmetic."""

    def test_percentage(self):
        progress = ProgressState(total_towns=3, total_industries=6)
        self.assertEqual(progress.percentage, 0)
        progress.completed_towns = 1
        self.assertEqual(progress.percentage, 33)
        progress.completed_towns = 3
        self.assertEqual(progress.percentage, 100)

    def test_no_towns(self):
        progress = ProgressState(total_towns=0, total_industries=0)
        self.assertEqual(progress.percentage, 0)
        self.assertIsNone(progress.estimated_time_ms)

    def test_estimated_time(self):
        """Mean town duration times the towns left, in milliseconds."""
        progress = ProgressState(total_towns=4, total_industries=8, completed_towns=2, town_completion_times=[2.0, 4.0])
        self.assertEqual(progress.estimated_time_ms, 6000.0)
        progress.completed_towns = 4
        self.assertIsNone(progress.estimated_time_ms)

    def test_copy_is_independent(self):
        progress = ProgressState(total_towns=2, total_industries=2, town_completion_times=[1.0])
        snapshot = progress.copy()
        progress.town_completion_times.append(2.0)
        self.assertEqual(snapshot.town_completion_times, [1.0])


class TestLogEntry(unittest.TestCase):
    def test_format(self):
        entry = LogEntry(timestamp="2024-01-01T00:00:00", message="done", level=LogLevel.SUCCESS)
        self.assertEqual(entry.format(), "[2024-01-01T00:00:00] [SUCCESS] done")
        self.assertEqual(entry.to_dict()["level"], "success")


if __name__ == "__main__":
    unittest.main()
