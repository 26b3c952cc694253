from __future__ import annotations

import json
import logging
import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .error_logger import ErrorLogger
from .errors import StoreError
from .events import CompleteEvent, ErrorEvent, ProgressEvent, ScrapeObserver
from .models import Business, LogEntry, LogLevel, utc_now_iso

logger = logging.getLogger(__name__)

# Statuses that close a session.
_FINAL_STATUSES = frozenset({"completed", "stopped", "error"})


@dataclass(frozen=True)
class SessionRecord:
    id: str
    status: str
    towns: List[str]
    industries: List[str]
    config: Dict[str, Any]
    progress: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    completed_at: Optional[str] = None
    error_message: Optional[str] = None


class SessionStore(ABC):
    """Persistence for scraping sessions, their records and their logs."""

    @abstractmethod
    def create_session(
        self, session_id: str, towns: Sequence[str], industries: Sequence[str], config: Dict[str, Any]
    ) -> SessionRecord:
        ...

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        ...

    @abstractmethod
    def update_status(self, session_id: str, status: str, error_message: Optional[str] = None) -> SessionRecord:
        ...

    @abstractmethod
    def update_progress(self, session_id: str, **fields: Any) -> SessionRecord:
        ...

    @abstractmethod
    def add_businesses(self, session_id: str, businesses: Iterable[Business]) -> int:
        ...

    @abstractmethod
    def list_businesses(self, session_id: str) -> List[Business]:
        ...

    @abstractmethod
    def add_log(self, session_id: str, entry: LogEntry) -> None:
        ...

    @abstractmethod
    def list_logs(self, session_id: str, limit: int = 300) -> List[LogEntry]:
        ...

    def close(self) -> None:
        """Flush pending writes and release resources."""


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, SessionRecord] = {}
        self._businesses: Dict[str, List[Business]] = {}
        self._logs: Dict[str, List[LogEntry]] = {}

    def create_session(
        self, session_id: str, towns: Sequence[str], industries: Sequence[str], config: Dict[str, Any]
    ) -> SessionRecord:
        record = SessionRecord(
            id=session_id,
            status="running",
            towns=list(towns),
            industries=list(industries),
            config=dict(config),
        )
        with self._lock:
            if session_id in self._sessions:
                raise StoreError(f"session {session_id} already exists")
            self._sessions[session_id] = record
            self._businesses[session_id] = []
            self._logs[session_id] = []
        self._journal("session", asdict(record))
        return record

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._sessions.get(session_id)

    def update_status(self, session_id: str, status: str, error_message: Optional[str] = None) -> SessionRecord:
        now = utc_now_iso()
        changes: Dict[str, Any] = {"status": status, "updated_at": now}
        if status in _FINAL_STATUSES:
            changes["completed_at"] = now
        if error_message is not None:
            changes["error_message"] = error_message
        return self._update(session_id, changes)

    def update_progress(self, session_id: str, **fields: Any) -> SessionRecord:
        with self._lock:
            current = self._require(session_id)
            record = replace(current, progress={**current.progress, **fields}, updated_at=utc_now_iso())
            self._sessions[session_id] = record
        self._journal("session", asdict(record))
        return record

    def add_businesses(self, session_id: str, businesses: Iterable[Business]) -> int:
        batch = list(businesses)
        with self._lock:
            self._require(session_id)
            self._businesses[session_id].extend(batch)
        for business in batch:
            self._journal("business", {"session_id": session_id, **business.to_dict()})
        return len(batch)

    def list_businesses(self, session_id: str) -> List[Business]:
        with self._lock:
            self._require(session_id)
            return list(self._businesses[session_id])

    def add_log(self, session_id: str, entry: LogEntry) -> None:
        with self._lock:
            self._require(session_id)
            self._logs[session_id].append(entry)
        self._journal("log", {"session_id": session_id, **entry.to_dict()})

    def list_logs(self, session_id: str, limit: int = 300) -> List[LogEntry]:
        with self._lock:
            self._require(session_id)
            logs = self._logs[session_id]
            return list(logs[-limit:]) if limit > 0 else []

    def _update(self, session_id: str, changes: Dict[str, Any]) -> SessionRecord:
        with self._lock:
            record = replace(self._require(session_id), **changes)
            self._sessions[session_id] = record
        self._journal("session", asdict(record))
        return record

    def _require(self, session_id: str) -> SessionRecord:
        record = self._sessions.get(session_id)
        if record is None:
            raise StoreError(f"unknown session {session_id}")
        return record

    def _journal(self, kind: str, payload: Dict[str, Any]) -> None:
        pass


class JsonlSessionStore(InMemorySessionStore):
    """In-memory store that also appends every change to a JSON Lines file.

    Writes go through a queue to a background thread so callers never block
    on disk. Each line is ``{"kind": ..., "data": ...}``; the latest
    ``session`` line for an id is its current state. replay() rebuilds a
    store from an existing file."""

    def __init__(self, path: str) -> None:
        super().__init__()
        self._path = path
        self._queue: "queue.Queue[Optional[Dict[str, Any]]]" = queue.Queue()
        self._thread = threading.Thread(target=self._writer, name="session-writer", daemon=True)
        self._thread.start()

    @property
    def path(self) -> str:
        return self._path

    def close(self) -> None:
        """Signal the writer thread to flush and stop."""
        self._queue.put(None)
        self._thread.join(timeout=5)

    def _journal(self, kind: str, payload: Dict[str, Any]) -> None:
        self._queue.put({"kind": kind, "data": payload})

    def _writer(self) -> None:
        with open(self._path, "a", encoding="utf-8") as f:
            while True:
                item = self._queue.get()
                if item is None:
                    break
                f.write(json.dumps(item, ensure_ascii=False, default=str) + "\n")
                f.flush()

    @staticmethod
    def replay(path: str) -> InMemorySessionStore:
        """Load a journal written by a previous JsonlSessionStore."""
        store = InMemorySessionStore()
        with open(path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    item = json.loads(line)
                    kind, data = item["kind"], dict(item["data"])
                except (ValueError, KeyError, TypeError) as exc:
                    raise StoreError(f"{path}:{lineno}: malformed journal line") from exc
                if kind == "session":
                    record = SessionRecord(**data)
                    store._sessions[record.id] = record
                    store._businesses.setdefault(record.id, [])
                    store._logs.setdefault(record.id, [])
                elif kind == "business":
                    session_id = data.pop("session_id")
                    store._businesses.setdefault(session_id, []).append(Business.from_dict(data))
                elif kind == "log":
                    session_id = data.pop("session_id")
                    entry = LogEntry(data["timestamp"], data["message"], LogLevel(data["level"]))
                    store._logs.setdefault(session_id, []).append(entry)
        return store


class SessionRecorder(ScrapeObserver):
    """Observer that mirrors a run's events into a session store.

    Store failures are recorded as persistence errors and never interrupt
    the run."""

    def __init__(self, store: SessionStore, session_id: str, error_logger: Optional[ErrorLogger] = None) -> None:
        self.store = store
        self.session_id = session_id
        self._error_logger = error_logger or ErrorLogger()

    def on_log(self, entry: LogEntry) -> None:
        self._guard("add_log", self.store.add_log, self.session_id, entry)

    def on_progress(self, event: ProgressEvent) -> None:
        self._guard(
            "update_progress",
            self.store.update_progress,
            self.session_id,
            percentage=event.percentage,
            towns_remaining=event.towns_remaining,
            businesses_scraped=event.businesses_scraped,
            estimated_time_ms=event.estimated_time_ms,
        )
        if event.status in ("running", "paused"):
            self._guard("update_status", self.store.update_status, self.session_id, event.status)

    def on_complete(self, event: CompleteEvent) -> None:
        self._guard("add_businesses", self.store.add_businesses, self.session_id, event.businesses)
        self._guard(
            "update_progress",
            self.store.update_progress,
            self.session_id,
            summary=asdict(event.summary),
        )
        status = "stopped" if event.stopped else "completed"
        self._guard("update_status", self.store.update_status, self.session_id, status)

    def on_error(self, event: ErrorEvent) -> None:
        self._guard("update_status", self.store.update_status, self.session_id, "error", event.message)

    def _guard(self, operation: str, fn: Any, *args: Any, **kwargs: Any) -> None:
        try:
            fn(*args, **kwargs)
        except Exception as exc:  # noqa: BLE001
            self._error_logger.log_persistence_error(operation, exc, session_id=self.session_id)
