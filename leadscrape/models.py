from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


NO_PHONE = "No phone"
UNKNOWN_PROVIDER = "Unknown"


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class TownStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class ViewType(str, Enum):
    LIST = "list"
    DETAILS = "details"
    UNKNOWN = "unknown"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Business:
    """One extracted business listing.

    ``provider`` stays empty until the enrichment stage runs."""

    name: str
    maps_url: str = ""
    phone: str = ""
    provider: str = ""
    address: str = ""
    category: str = ""
    town: str = ""
    notes: str = ""
    id: str = field(default_factory=new_id)

    EXPORT_COLUMNS = ("maps_url", "name", "phone", "provider", "address", "category", "notes", "town")

    @property
    def has_lookup_key(self) -> bool:
        phone = (self.phone or "").strip()
        return bool(phone) and phone != NO_PHONE

    def to_row(self) -> Dict[str, str]:
        return {col: getattr(self, col) for col in self.EXPORT_COLUMNS}

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, **self.to_row()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Business":
        kwargs = {col: str(data.get(col) or "") for col in cls.EXPORT_COLUMNS}
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        return cls(**kwargs)


@dataclass
class ProgressState:
    total_towns: int
    total_industries: int
    completed_towns: int = 0
    completed_industries: int = 0
    total_businesses: int = 0
    start_time: float = field(default_factory=time.time)
    town_completion_times: List[float] = field(default_factory=list)

    @property
    def percentage(self) -> int:
        if self.total_towns <= 0:
            return 0
        return round(min(self.completed_towns, self.total_towns) / self.total_towns * 100)

    @property
    def towns_remaining(self) -> int:
        return max(0, self.total_towns - self.completed_towns)

    @property
    def estimated_time_ms(self) -> Optional[float]:
        """Mean town duration times the towns still queued."""
        remaining = self.towns_remaining
        if not self.town_completion_times or remaining == 0:
            return None
        avg = sum(self.town_completion_times) / len(self.town_completion_times)
        return avg * remaining * 1000

    def copy(self) -> "ProgressState":
        return ProgressState(
            total_towns=self.total_towns,
            total_industries=self.total_industries,
            completed_towns=self.completed_towns,
            completed_industries=self.completed_industries,
            total_businesses=self.total_businesses,
            start_time=self.start_time,
            town_completion_times=list(self.town_completion_times),
        )


@dataclass
class TownLog:
    town: str
    start_time: float
    end_time: Optional[float] = None
    lead_count: int = 0
    status: TownStatus = TownStatus.IN_PROGRESS
    errors: List[str] = field(default_factory=list)
    industry_progress: Dict[str, str] = field(default_factory=dict)

    @property
    def duration_secs(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    message: str
    level: LogLevel = LogLevel.INFO

    def format(self) -> str:
        return f"[{self.timestamp}] [{self.level.value.upper()}] {self.message}"

    def to_dict(self) -> Dict[str, str]:
        return {"timestamp": self.timestamp, "message": self.message, "level": self.level.value}


@dataclass(frozen=True)
class ErrorLogEntry:
    timestamp: str
    severity: Severity
    message: str
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    stack: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionSummary:
    total_towns: int
    completed_towns: int
    total_leads: int
    total_errors: int
    total_duration_ms: float
    average_duration_ms: float


@dataclass(frozen=True)
class SubUnitResult:
    town: str
    industry: str
    success: bool
    latency_ms: int
    record_count: int
    error_type: Optional[str] = None


@dataclass(frozen=True)
class MetricsSnapshot:
    window_secs: int
    total: int
    success_count: int
    failure_count: int
    records: int
    avg_latency_ms: float
    error_types: Dict[str, int]
    timestamp: float
