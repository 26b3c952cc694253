"""Tests for the run narration log."""

import unittest
from unittest import mock

from leadscrape.events import CallbackObserver
from leadscrape.logging_manager import LoggingManager
from leadscrape.models import LogLevel, TownStatus


class TestLoggingManager(unittest.TestCase):
    """Display buffer, full history and per-town ledger."""

    def test_display_buffer_is_bounded(self):
        """Oldest display entries drop first; full history keeps everything."""
        log = LoggingManager(max_display_logs=3)
        for i in range(5):
            log.log_message(f"message {i}")
        self.assertEqual([e.message for e in log.get_display_entries()], ["message 2", "message 3", "message 4"])
        self.assertEqual(len(log.get_full_log()), 5)

    def test_shrinking_display_keeps_newest(self):
        log = LoggingManager()
        for i in range(5):
            log.log_message(f"message {i}")
        log.set_max_display_logs(2)
        self.assertEqual([e.message for e in log.get_display_entries()], ["message 3", "message 4"])

    def test_entries_forwarded_to_observer(self):
        received = []
        log = LoggingManager(observer=CallbackObserver(log=received.append))
        log.log_message("careful", "warning")
        self.assertEqual(len(received), 1)
        self.assertEqual(received[0].level, LogLevel.WARNING)
        self.assertIn("[WARNING] careful", log.get_full_log()[0])

    def test_town_lifecycle(self):
        log = LoggingManager()
        log.log_town_start("Springs")
        log.log_industry_progress("Springs", "Plumbers", "12 found")
        log.log_town_complete("Springs", 12, 3.5)

        town = log.get_town_logs()["Springs"]
        self.assertEqual(town.status, TownStatus.COMPLETED)
        self.assertEqual(town.lead_count, 12)
        self.assertEqual(town.industry_progress, {"Plumbers": "12 found"})
        self.assertIn("Completed: Springs - 12 businesses in 3.50s", log.get_full_log()[-1])

    def test_error_marks_town(self):
        """An error moves an in-progress town to the error state."""
        log = LoggingManager()
        log.log_town_start("Benoni")
        log.log_error("Benoni", "Bakers", "feed missing")
        town = log.get_town_logs()["Benoni"]
        self.assertEqual(town.status, TownStatus.ERROR)
        self.assertEqual(town.errors, ["Bakers: feed missing"])

    def test_error_for_unknown_town_still_logged(self):
        log = LoggingManager()
        log.log_error("System", "Orchestrator", "boom")
        self.assertEqual(log.get_town_logs(), {})
        self.assertIn("ERROR - System - Orchestrator: boom", log.get_full_log()[0])

    def test_summary(self):
        with mock.patch("leadscrape.logging_manager.time.time", return_value=100.0):
            log = LoggingManager()
            log.log_town_start("Springs")
            log.log_town_start("Benoni")
            log.log_town_start("Boksburg")
        with mock.patch("leadscrape.logging_manager.time.time", return_value=102.0):
            log.log_town_complete("Springs", 10, 2.0)
            log.log_error("Benoni", "Bakers", "timeout")
        with mock.patch("leadscrape.logging_manager.time.time", return_value=104.0):
            log.log_town_complete("Boksburg", 5, 4.0)
            summary = log.get_summary()

        self.assertEqual(summary.total_towns, 3)
        self.assertEqual(summary.completed_towns, 2)
        self.assertEqual(summary.total_leads, 15)
        self.assertEqual(summary.total_errors, 1)
        self.assertEqual(summary.total_duration_ms, 4000.0)
        self.assertEqual(summary.average_duration_ms, 3000.0)

    def test_summary_table(self):
        log = LoggingManager()
        log.log_town_start("Springs")
        log.log_town_complete("Springs", 7, 1.0)
        log.log_town_start("Benoni")
        lines = log.get_summary_table()
        self.assertEqual(lines[0], "=== SCRAPING SUMMARY ===")
        self.assertIn("Springs | 7 | Completed", lines)
        self.assertIn("Benoni | 0 | In Progress", lines)
        self.assertIn("Total Businesses: 7", lines)

    def test_clear(self):
        log = LoggingManager()
        log.log_town_start("Springs")
        log.clear()
        self.assertEqual(log.get_full_log(), [])
        self.assertEqual(log.get_town_logs(), {})
        self.assertEqual(log.get_display_text(), "")


if __name__ == "__main__":
    unittest.main()
