from __future__ import annotations

import logging
import time
from collections import deque
from threading import Lock
from typing import Deque, Dict, List, Optional

from .events import ScrapeObserver
from .models import LogEntry, LogLevel, SessionSummary, TownLog, TownStatus, utc_now_iso

logger = logging.getLogger(__name__)

_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class LoggingManager:
    """Thread-safe narration log for a scraping run.

    Every entry goes to a bounded display buffer (oldest dropped first) and
    to an unbounded history, and is forwarded to the observer. A per-town
    ledger backs get_summary()."""

    def __init__(self, observer: Optional[ScrapeObserver] = None, max_display_logs: int = 300) -> None:
        self._observer = observer
        self._lock = Lock()
        self._display: Deque[LogEntry] = deque(maxlen=max_display_logs)
        self._history: List[LogEntry] = []
        self._towns: Dict[str, TownLog] = {}
        self._session_start = time.time()

    def set_observer(self, observer: Optional[ScrapeObserver]) -> None:
        self._observer = observer

    def log_town_start(self, town: str) -> None:
        with self._lock:
            self._towns[town] = TownLog(town=town, start_time=time.time())
        self._add(LogLevel.INFO, f"Started scraping: {town}")

    def log_town_complete(self, town: str, lead_count: int, duration_secs: float) -> None:
        with self._lock:
            town_log = self._towns.get(town)
            if town_log is not None:
                town_log.end_time = time.time()
                town_log.lead_count = lead_count
                town_log.status = TownStatus.COMPLETED
        self._add(LogLevel.SUCCESS, f"Completed: {town} - {lead_count} businesses in {duration_secs:.2f}s")

    def log_industry_progress(self, town: str, industry: str, status: str) -> None:
        with self._lock:
            town_log = self._towns.get(town)
            if town_log is not None:
                town_log.industry_progress[industry] = status
        self._add(LogLevel.INFO, f"{town} - {industry}: {status}")

    def log_error(self, town: str, industry: str, message: str) -> None:
        with self._lock:
            town_log = self._towns.get(town)
            if town_log is not None:
                town_log.errors.append(f"{industry}: {message}")
                if town_log.status == TownStatus.IN_PROGRESS:
                    town_log.status = TownStatus.ERROR
        self._add(LogLevel.ERROR, f"ERROR - {town} - {industry}: {message}")

    def log_message(self, message: str, level: LogLevel | str = LogLevel.INFO) -> None:
        self._add(LogLevel(level), message)

    def get_summary(self) -> SessionSummary:
        now = time.time()
        with self._lock:
            logs = list(self._towns.values())
            started = self._session_start
        completed = [log for log in logs if log.status == TownStatus.COMPLETED]
        durations = [log.duration_secs for log in completed if log.duration_secs is not None]
        return SessionSummary(
            total_towns=len(logs),
            completed_towns=len(completed),
            total_leads=sum(log.lead_count for log in completed),
            total_errors=sum(len(log.errors) for log in logs),
            total_duration_ms=(now - started) * 1000,
            average_duration_ms=(sum(durations) / len(durations) * 1000) if durations else 0.0,
        )

    def get_summary_table(self) -> List[str]:
        lines = ["=== SCRAPING SUMMARY ===", "", "Town Name | Businesses Scraped | Status", "-" * 60]
        labels = {
            TownStatus.COMPLETED: "Completed",
            TownStatus.ERROR: "Error",
            TownStatus.IN_PROGRESS: "In Progress",
        }
        for town_log in self.get_town_logs().values():
            lines.append(f"{town_log.town} | {town_log.lead_count} | {labels[town_log.status]}")
        summary = self.get_summary()
        lines.extend(
            [
                "",
                f"Total Towns: {summary.total_towns}",
                f"Completed Towns: {summary.completed_towns}",
                f"Total Businesses: {summary.total_leads}",
                f"Total Errors: {summary.total_errors}",
                f"Total Duration: {summary.total_duration_ms / 1000:.2f}s",
                f"Average Duration per Town: {summary.average_duration_ms / 1000:.2f}s",
            ]
        )
        return lines

    def get_display_entries(self) -> List[LogEntry]:
        with self._lock:
            return list(self._display)

    def get_display_text(self) -> str:
        return "\n".join(f"[{e.timestamp}] {e.message}" for e in self.get_display_entries())

    def get_full_log(self) -> List[str]:
        with self._lock:
            return [e.format() for e in self._history]

    def get_town_logs(self) -> Dict[str, TownLog]:
        with self._lock:
            return dict(self._towns)

    @property
    def session_start(self) -> float:
        return self._session_start

    def set_max_display_logs(self, max_logs: int) -> None:
        with self._lock:
            self._display = deque(self._display, maxlen=max_logs)

    def clear(self) -> None:
        with self._lock:
            self._display.clear()
            self._history.clear()
            self._towns.clear()
            self._session_start = time.time()

    def _add(self, level: LogLevel, message: str) -> LogEntry:
        entry = LogEntry(timestamp=utc_now_iso(), message=message, level=level)
        with self._lock:
            self._display.append(entry)
            self._history.append(entry)
        logger.log(_LEVELS[level], message)
        if self._observer is not None:
            self._observer.on_log(entry)
        return entry
