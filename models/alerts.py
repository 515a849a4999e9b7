"""Dataclasses for rules, outcomes, alerts, and lifecycle transitions."""
import copy
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from models.enums import Severity, AlertStatus, TransitionKind


def utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Finding:
    """Positive result of a rule condition.

    ``severity`` is optional; when set it overrides the rule's default,
    which is how a condition promotes an alert based on magnitude.
    """
    message: str
    severity: Optional[Severity] = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Rule:
    id: str
    name: str
    source: str
    condition: Callable[[Any, dict], Any]
    severity: Severity = Severity.WARNING
    category: str = "system"
    channels: frozenset = frozenset()
    description: str = ""
    enabled: bool = True
    cooldown_seconds: int = 0

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "source": self.source,
            "severity": self.severity.value,
            "category": self.category,
            "channels": sorted(self.channels),
            "description": self.description,
            "enabled": self.enabled,
            "cooldown_seconds": self.cooldown_seconds,
        }


@dataclass(frozen=True)
class RuleOutcome:
    rule_id: str
    fired: bool
    severity: Severity = Severity.WARNING
    title: str = ""
    message: str = ""
    category: str = "system"
    metadata: dict = field(default_factory=dict)
    channels: frozenset = frozenset()
    cooldown_seconds: int = 0

    @classmethod
    def from_finding(cls, rule, finding):
        return cls(
            rule_id=rule.id,
            fired=True,
            severity=Severity.parse(finding.severity or rule.severity),
            title=rule.name,
            message=finding.message,
            category=rule.category,
            metadata=dict(finding.metadata),
            channels=rule.channels,
            cooldown_seconds=rule.cooldown_seconds,
        )

    @classmethod
    def cleared(cls, rule):
        return cls(
            rule_id=rule.id,
            fired=False,
            severity=rule.severity,
            title=rule.name,
            category=rule.category,
            channels=rule.channels,
            cooldown_seconds=rule.cooldown_seconds,
        )


@dataclass
class Alert:
    id: str
    type: str
    severity: Severity
    title: str = ""
    message: str = ""
    category: str = "system"
    metadata: dict = field(default_factory=dict)
    channels: frozenset = frozenset()
    occurrence_count: int = 1
    created_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)
    status: AlertStatus = AlertStatus.ACTIVE
    acknowledged: bool = False
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    @property
    def is_active(self):
        return self.status == AlertStatus.ACTIVE

    def copy(self):
        return copy.deepcopy(self)

    def to_dict(self):
        d = asdict(self)
        d["severity"] = self.severity.value
        d["status"] = self.status.value
        d["channels"] = sorted(self.channels)
        for key in ("created_at", "last_seen_at", "acknowledged_at", "resolved_at"):
            d[key] = _iso(d[key])
        return d


@dataclass(frozen=True)
class Transition:
    kind: TransitionKind
    alert: Optional[Alert] = None
    notify: bool = False
    previous_severity: Optional[Severity] = None
    recorded_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "kind": self.kind.value,
            "alert": self.alert.to_dict() if self.alert else None,
            "notify": self.notify,
            "previous_severity": self.previous_severity.value if self.previous_severity else None,
            "recorded_at": _iso(self.recorded_at),
        }


@dataclass(frozen=True)
class HistoryEntry:
    transition: TransitionKind
    recorded_at: datetime
    alert: Alert

    def to_dict(self):
        d = self.alert.to_dict()
        d["transition"] = self.transition.value
        d["recorded_at"] = _iso(self.recorded_at)
        return d


@dataclass
class CycleResult:
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    outcomes: list = field(default_factory=list)
    transitions: list = field(default_factory=list)
    provider_failures: dict = field(default_factory=dict)
    rule_failures: dict = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self):
        return self.error is None

    @property
    def notified(self):
        return [t for t in self.transitions if t.notify]

    def to_dict(self):
        return {
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "outcomes": len(self.outcomes),
            "fired": sum(1 for o in self.outcomes if o.fired),
            "transitions": [t.to_dict() for t in self.transitions if t.kind != TransitionKind.NOOP],
            "provider_failures": dict(self.provider_failures),
            "rule_failures": dict(self.rule_failures),
            "error": self.error,
        }
