from __future__ import annotations

import logging
import queue
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Tuple

from .models import Business, LogEntry, SessionSummary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    percentage: int
    towns_remaining: int
    businesses_scraped: int
    estimated_time_ms: Optional[float]
    status: str


@dataclass(frozen=True)
class CompleteEvent:
    businesses: List[Business]
    summary: SessionSummary
    stopped: bool = False


@dataclass(frozen=True)
class ErrorEvent:
    message: str


class ScrapeObserver:
    """Receives orchestrator events. Every slot defaults to a no-op."""

    def on_progress(self, event: ProgressEvent) -> None:
        pass

    def on_log(self, entry: LogEntry) -> None:
        pass

    def on_complete(self, event: CompleteEvent) -> None:
        pass

    def on_error(self, event: ErrorEvent) -> None:
        pass


class CallbackObserver(ScrapeObserver):
    """Observer built from plain callables."""

    def __init__(
        self,
        progress: Optional[Callable[[ProgressEvent], None]] = None,
        log: Optional[Callable[[LogEntry], None]] = None,
        complete: Optional[Callable[[CompleteEvent], None]] = None,
        error: Optional[Callable[[ErrorEvent], None]] = None,
    ) -> None:
        self._progress = progress
        self._log = log
        self._complete = complete
        self._error = error

    def on_progress(self, event: ProgressEvent) -> None:
        if self._progress:
            self._progress(event)

    def on_log(self, entry: LogEntry) -> None:
        if self._log:
            self._log(entry)

    def on_complete(self, event: CompleteEvent) -> None:
        if self._complete:
            self._complete(event)

    def on_error(self, event: ErrorEvent) -> None:
        if self._error:
            self._error(event)


class QueueObserver(ScrapeObserver):
    """Pushes ``(kind, payload)`` tuples onto a thread-safe queue.

    Lets a consumer on another thread (an HTTP handler, a UI loop) drain
    events at its own pace."""

    def __init__(self, channel: Optional["queue.Queue[Tuple[str, Any]]"] = None) -> None:
        self.channel: "queue.Queue[Tuple[str, Any]]" = channel if channel is not None else queue.Queue()

    def on_progress(self, event: ProgressEvent) -> None:
        self.channel.put(("progress", event))

    def on_log(self, entry: LogEntry) -> None:
        self.channel.put(("log", entry))

    def on_complete(self, event: CompleteEvent) -> None:
        self.channel.put(("complete", event))

    def on_error(self, event: ErrorEvent) -> None:
        self.channel.put(("error", event))

    def drain(self) -> List[Tuple[str, Any]]:
        items = []
        while True:
            try:
                items.append(self.channel.get_nowait())
            except queue.Empty:
                return items


class FanOutObserver(ScrapeObserver):
    """Forwards each event to several observers.

    A failing observer is logged and skipped so it cannot break the run."""

    def __init__(self, observers: Iterable[ScrapeObserver]) -> None:
        self._observers = list(observers)

    def on_progress(self, event: ProgressEvent) -> None:
        self._dispatch("on_progress", event)

    def on_log(self, entry: LogEntry) -> None:
        self._dispatch("on_log", entry)

    def on_complete(self, event: CompleteEvent) -> None:
        self._dispatch("on_complete", event)

    def on_error(self, event: ErrorEvent) -> None:
        self._dispatch("on_error", event)

    def _dispatch(self, slot: str, payload: Any) -> None:
        for observer in self._observers:
            try:
                getattr(observer, slot)(payload)
            except Exception:  # noqa: BLE001
                logger.exception("observer %s failed in %s", type(observer).__name__, slot)
