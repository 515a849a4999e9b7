"""Immutable signal snapshots produced by providers for one evaluation cycle."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import ClassVar, Optional


def _now():
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SignalSnapshot:
    """Base class: a point-in-time read of one monitored source."""
    source: ClassVar[str] = ""
    captured_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class LogRecord:
    """One structured log line, already classified by the provider."""
    timestamp: datetime
    level: str = "info"
    message: str = ""
    component: Optional[str] = None
    event: Optional[str] = None
    status_code: Optional[int] = None
    duration_ms: Optional[float] = None

    @property
    def is_error(self):
        return self.level == "error"


@dataclass(frozen=True)
class LogSnapshot(SignalSnapshot):
    source: ClassVar[str] = "logs"
    records: tuple = ()

    def since(self, minutes):
        cutoff = self.captured_at - timedelta(minutes=minutes)
        return [r for r in self.records if r.timestamp >= cutoff]


@dataclass(frozen=True)
class ErrorCountSnapshot(SignalSnapshot):
    source: ClassVar[str] = "error_counts"
    total: int = 0
    errors: int = 0

    @property
    def error_rate(self):
        return (self.errors / self.total * 100) if self.total > 0 else 0.0

    @classmethod
    def from_row(cls, row):
        return cls(total=int(row.get("total") or 0), errors=int(row.get("errors") or 0))


@dataclass(frozen=True)
class ApiLatencySnapshot(SignalSnapshot):
    source: ClassVar[str] = "api_latency"
    durations_ms: tuple = ()

    @property
    def average_ms(self):
        return sum(self.durations_ms) / len(self.durations_ms) if self.durations_ms else 0.0

    def slow_count(self, threshold_ms):
        return sum(1 for d in self.durations_ms if d > threshold_ms)

    @classmethod
    def from_rows(cls, rows):
        durations = [float(r["duration_ms"]) for r in rows if r.get("duration_ms")]
        return cls(durations_ms=tuple(d for d in durations if d > 0))


@dataclass(frozen=True)
class CancellationSnapshot(SignalSnapshot):
    source: ClassVar[str] = "cancellations"
    failures: int = 0

    @classmethod
    def from_row(cls, row):
        return cls(failures=int(row.get("failures") or 0))


@dataclass(frozen=True)
class RevenueSnapshot(SignalSnapshot):
    source: ClassVar[str] = "revenue"
    current_revenue: float = 0.0
    previous_revenue: float = 0.0

    @property
    def change_percent(self):
        if self.previous_revenue <= 0:
            return 0.0
        return (self.current_revenue - self.previous_revenue) / self.previous_revenue * 100

    @classmethod
    def from_row(cls, row):
        return cls(
            current_revenue=float(row.get("current_revenue") or 0),
            previous_revenue=float(row.get("previous_revenue") or 0),
        )


@dataclass(frozen=True)
class DatabaseSnapshot(SignalSnapshot):
    source: ClassVar[str] = "database"
    response_ms: Optional[float] = None
    error: Optional[str] = None

    @property
    def reachable(self):
        return self.error is None


class CycleSignals:
    """Read-only bundle of the snapshots gathered in one cycle, keyed by source."""

    def __init__(self, snapshots=None, captured_at=None):
        self._snapshots = MappingProxyType(dict(snapshots or {}))
        self.captured_at = captured_at or _now()

    @classmethod
    def of(cls, *snapshots):
        return cls({s.source: s for s in snapshots})

    def get(self, source):
        return self._snapshots.get(source)

    def __contains__(self, source):
        return source in self._snapshots

    def __len__(self):
        return len(self._snapshots)

    @property
    def sources(self):
        return sorted(self._snapshots)
