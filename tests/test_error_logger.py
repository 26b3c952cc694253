"""Tests for ErrorLogger and its helpers."""

import json
import unittest

from leadscrape.error_logger import ErrorLogger, mask_phone, normalize_error
from leadscrape.models import Severity


class TestHelpers(unittest.TestCase):
    def test_mask_phone(self):
        self.assertEqual(mask_phone("0115550100"), "******0100")
        self.assertEqual(mask_phone("12"), "****")
        self.assertEqual(mask_phone(""), "****")

    def test_normalize_exception(self):
        try:
            raise ValueError("bad card")
        except ValueError as exc:
            error_type, message, stack = normalize_error(exc)
        self.assertEqual((error_type, message), ("ValueError", "bad card"))
        self.assertIn("ValueError: bad card", stack)

    def test_normalize_other_values(self):
        self.assertEqual(normalize_error(None), (None, None, None))
        self.assertEqual(normalize_error("boom"), ("Error", "boom", None))
        self.assertEqual(normalize_error({"code": 7}), ("Error", '{"code": 7}', None))
        self.assertEqual(normalize_error(42), ("Error", "42", None))


class TestErrorLogger(unittest.TestCase):
    """Entry points set severity and context; queries filter them."""

    def setUp(self):
        self.errors = ErrorLogger()

    def test_browser_error_is_critical(self):
        entry = self.errors.log_browser_error(RuntimeError("chromium died"), worker_id=2)
        self.assertEqual(entry.severity, Severity.CRITICAL)
        self.assertEqual(entry.context["operation"], "browser_automation")
        self.assertEqual(entry.context["worker_id"], 2)
        self.assertEqual(entry.message, "Browser Error: chromium died")

    def test_browser_error_keeps_given_operation(self):
        entry = self.errors.log_browser_error(RuntimeError("x"), operation="process_town")
        self.assertEqual(entry.context["operation"], "process_town")

    def test_scraping_error_context(self):
        entry = self.errors.log_scraping_error("Springs", "Plumbers", TimeoutError("slow"))
        self.assertEqual(entry.severity, Severity.ERROR)
        self.assertEqual(entry.context, {"town": "Springs", "industry": "Plumbers", "operation": "scraping"})
        self.assertEqual(entry.error_type, "TimeoutError")
        self.assertEqual(entry.message, "Scraping Error [Springs - Plumbers]: slow")

    def test_lookup_error_masks_phone(self):
        """The number never appears in clear text in message or context."""
        entry = self.errors.log_lookup_error("0115550100", "timeout")
        self.assertEqual(entry.severity, Severity.WARNING)
        self.assertEqual(entry.context["phone"], "******0100")
        self.assertNotIn("0115550100", entry.message)
        self.assertNotIn("0115550100", self.errors.export_json())

    def test_validation_error_serializes_value(self):
        entry = self.errors.log_validation_error("retry_attempts", [0], "must be positive")
        self.assertEqual(entry.context["value"], "[0]")
        self.assertEqual(entry.message, "Validation Error [retry_attempts]: must be positive")
        self.assertIsNone(entry.error_type)

    def test_persistence_error(self):
        entry = self.errors.log_persistence_error("add_log", OSError("disk full"))
        self.assertEqual(entry.severity, Severity.CRITICAL)
        self.assertEqual(entry.context["store_operation"], "add_log")

    def test_queries(self):
        self.errors.log_warning("no end marker", operation="scroll")
        self.errors.log_error("card failed", ValueError("x"), operation="parse_business_card")
        self.errors.log_error("card failed", ValueError("y"), operation="parse_business_card")
        self.assertEqual(len(self.errors.by_severity("warning")), 1)
        self.assertEqual(len(self.errors.by_context("operation", "parse_business_card")), 2)

        stats = self.errors.stats(recent=2)
        self.assertEqual(stats.total, 3)
        self.assertEqual(stats.by_severity, {"warning": 1, "error": 2, "critical": 0})
        self.assertEqual(stats.by_operation, {"scroll": 1, "parse_business_card": 2})
        self.assertEqual(len(stats.recent), 2)

    def test_bounded_history(self):
        """The oldest entry is evicted once max_entries is reached."""
        errors = ErrorLogger(max_entries=2)
        for i in range(3):
            errors.log_warning(f"w{i}")
        self.assertEqual([e.message for e in errors.entries()], ["w1", "w2"])

    def test_export_json_and_clear(self):
        self.errors.log_error("failed", RuntimeError("x"))
        rows = json.loads(self.errors.export_json())
        self.assertEqual(rows[0]["severity"], "error")
        self.assertEqual(rows[0]["error_type"], "RuntimeError")
        self.errors.clear()
        self.assertEqual(len(self.errors), 0)


if __name__ == "__main__":
    unittest.main()
