"""Enums for alert severity, status, and lifecycle transitions."""
from enum import Enum


class Severity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self):
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value):
        """Accept an enum member or a case-insensitive name.

        Legacy log-agent levels are folded into the two-level scale:
        "high" counts as critical, "medium"/"low"/"info" as warning.
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        key = _SEVERITY_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown severity: {value!r}") from None


_SEVERITY_RANK = {Severity.WARNING: 1, Severity.CRITICAL: 2}
_SEVERITY_ALIASES = {"high": "critical", "medium": "warning", "low": "warning", "info": "warning"}


class AlertStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


class TransitionKind(str, Enum):
    CREATED = "created"
    SEVERITY_CHANGED = "severity_changed"
    CONFIRMED = "confirmed"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    NOOP = "noop"


# Transitions that leave a trace in the history ring
RECORDED_TRANSITIONS = frozenset({
    TransitionKind.CREATED,
    TransitionKind.SEVERITY_CHANGED,
    TransitionKind.ACKNOWLEDGED,
    TransitionKind.RESOLVED,
})


class Category(str, Enum):
    SYSTEM = "system"
    API = "api"
    CANCELLATIONS = "cancellations"
    REVENUE = "revenue"
    DATABASE = "database"
    SECURITY = "security"
    INTEGRATIONS = "integrations"
    DATA_QUALITY = "data_quality"
