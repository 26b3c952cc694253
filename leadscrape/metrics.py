from __future__ import annotations

import time
from collections import Counter, deque
from dataclasses import asdict
from threading import Lock
from typing import Deque, Dict, Iterable, List

from .models import MetricsSnapshot, SubUnitResult


class ScrapeMetrics:
    """Thread-safe collector of per-industry scrape outcomes.

    Records SubUnitResult events and produces aggregated MetricsSnapshot
    objects over configurable sliding time windows."""

    def __init__(self, max_events: int = 10000) -> None:
        self._lock = Lock()
        self._events: Deque[tuple[float, SubUnitResult]] = deque(maxlen=max_events)

    def record(self, result: SubUnitResult) -> None:
        """Record a sub-unit result with the current timestamp."""
        with self._lock:
            self._events.append((time.time(), result))

    def snapshot(self, window_secs: int) -> MetricsSnapshot:
        """Return aggregated metrics for events within the last window_secs seconds."""
        now = time.time()
        cutoff = now - window_secs
        with self._lock:
            events: List[SubUnitResult] = [e for ts, e in self._events if ts >= cutoff]
        total = len(events)
        success_count = sum(1 for e in events if e.success)
        error_types = Counter(e.error_type for e in events if e.error_type)
        return MetricsSnapshot(
            window_secs=window_secs,
            total=total,
            success_count=success_count,
            failure_count=total - success_count,
            records=sum(e.record_count for e in events),
            avg_latency_ms=(sum(e.latency_ms for e in events) / total) if total else 0.0,
            error_types=dict(error_types),
            timestamp=now,
        )

    def export_json(self) -> List[Dict]:
        """Export all recorded events as a list of dictionaries."""
        with self._lock:
            return [{"timestamp": ts, **asdict(e)} for ts, e in self._events]

    def export_csv_rows(self) -> Iterable[Dict]:
        """Yield recorded events as flat dictionaries suitable for CSV export."""
        for row in self.export_json():
            yield row
