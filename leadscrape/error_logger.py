from __future__ import annotations

import json
import logging
import traceback
from collections import Counter, deque
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any, Deque, Dict, List, Mapping, Optional

from .models import ErrorLogEntry, Severity, utc_now_iso

logger = logging.getLogger(__name__)

_LEVELS = {
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}

_SENSITIVE_KEYS = frozenset({"phone", "phone_number"})


@dataclass(frozen=True)
class ErrorStats:
    total: int
    by_severity: Dict[str, int]
    by_operation: Dict[str, int]
    recent: List[ErrorLogEntry]


def mask_phone(phone: str, visible: int = 4) -> str:
    """Hide all but the last ``visible`` characters of a phone number."""
    phone = phone or ""
    if len(phone) <= visible:
        return "*" * visible
    return "*" * (len(phone) - visible) + phone[-visible:]


def normalize_error(error: Any) -> tuple[Optional[str], Optional[str], Optional[str]]:
    """Reduce any raised value to (type name, message, stack)."""
    if error is None:
        return None, None, None
    if isinstance(error, BaseException):
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return type(error).__name__, str(error), stack
    if isinstance(error, str):
        return "Error", error, None
    if isinstance(error, Mapping):
        try:
            return "Error", json.dumps(dict(error), default=str, sort_keys=True), None
        except (TypeError, ValueError):
            return "Error", repr(error), None
    return "Error", str(error), None


class ErrorLogger:
    """Structured, queryable error ledger.

    One instance is created per process (or per test) and passed to every
    component that needs it. Entries are kept in a bounded deque; the oldest
    entry is evicted once ``max_entries`` is reached. Every entry is also
    written to the module logger."""

    def __init__(self, max_entries: int = 1000) -> None:
        self._lock = Lock()
        self._entries: Deque[ErrorLogEntry] = deque(maxlen=max_entries)

    # -- entry points -------------------------------------------------------

    def log_browser_error(self, error: Any, **context: Any) -> ErrorLogEntry:
        return self._record(
            Severity.CRITICAL,
            "Browser Error",
            error,
            {**context, "operation": context.get("operation", "browser_automation")},
        )

    def log_scraping_error(self, town: str, industry: str, error: Any, **context: Any) -> ErrorLogEntry:
        ctx = {"town": town, "industry": industry, "operation": "scraping", **context}
        return self._record(Severity.ERROR, f"Scraping Error [{town} - {industry}]", error, ctx)

    def log_extraction_error(self, error: Any, **context: Any) -> ErrorLogEntry:
        ctx = {"operation": "extraction", **context}
        return self._record(Severity.ERROR, "Extraction Error", error, ctx)

    def log_lookup_error(self, phone: str, error: Any, **context: Any) -> ErrorLogEntry:
        ctx = {**context, "operation": "provider_lookup", "phone": phone}
        return self._record(Severity.WARNING, f"Provider Lookup Error [{mask_phone(phone)}]", error, ctx)

    def log_persistence_error(self, operation: str, error: Any, **context: Any) -> ErrorLogEntry:
        ctx = {**context, "operation": "persistence", "store_operation": operation}
        return self._record(Severity.CRITICAL, f"Persistence Error [{operation}]", error, ctx)

    def log_validation_error(self, field: str, value: Any, reason: str, **context: Any) -> ErrorLogEntry:
        if not isinstance(value, str):
            value = json.dumps(value, default=str)
        ctx = {**context, "operation": "validation", "field": field, "value": value}
        return self._record(Severity.WARNING, f"Validation Error [{field}]: {reason}", None, ctx)

    def log_error(self, message: str, error: Any = None, **context: Any) -> ErrorLogEntry:
        return self._record(Severity.ERROR, message, error, context)

    def log_warning(self, message: str, **context: Any) -> ErrorLogEntry:
        return self._record(Severity.WARNING, message, None, context)

    # -- queries ------------------------------------------------------------

    def entries(self) -> List[ErrorLogEntry]:
        with self._lock:
            return list(self._entries)

    def by_severity(self, severity: Severity | str) -> List[ErrorLogEntry]:
        severity = Severity(severity)
        return [e for e in self.entries() if e.severity == severity]

    def by_context(self, key: str, value: Any) -> List[ErrorLogEntry]:
        return [e for e in self.entries() if key in e.context and e.context[key] == value]

    def stats(self, recent: int = 10) -> ErrorStats:
        entries = self.entries()
        by_severity = {s.value: 0 for s in Severity}
        by_operation: Counter[str] = Counter()
        for entry in entries:
            by_severity[entry.severity.value] += 1
            operation = entry.context.get("operation")
            if operation:
                by_operation[operation] += 1
        return ErrorStats(
            total=len(entries),
            by_severity=by_severity,
            by_operation=dict(by_operation),
            recent=entries[-recent:] if recent > 0 else [],
        )

    def export_json(self) -> str:
        rows = []
        for entry in self.entries():
            row = asdict(entry)
            row["severity"] = entry.severity.value
            rows.append(row)
        return json.dumps(rows, indent=2, default=str)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    reset = clear

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -- internals ----------------------------------------------------------

    def _record(self, severity: Severity, message: str, error: Any, context: Dict[str, Any]) -> ErrorLogEntry:
        error_type, error_message, stack = normalize_error(error)
        context = {k: mask_phone(str(v)) if k in _SENSITIVE_KEYS and v else v for k, v in context.items()}
        if error_message and error_message not in message:
            message = f"{message}: {error_message}"
        entry = ErrorLogEntry(
            timestamp=utc_now_iso(),
            severity=severity,
            message=message,
            error_type=error_type,
            error_message=error_message,
            stack=stack,
            context=dict(context),
        )
        with self._lock:
            self._entries.append(entry)
        logger.log(_LEVELS[severity], "%s | context=%s", message, json.dumps(entry.context, default=str))
        return entry
