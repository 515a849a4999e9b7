"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone
from models.database import Database
from models.alerts import Rule, RuleOutcome
from models.enums import Severity


class FakeClock:
    """Deterministic clock; advance() moves it forward."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


class StaticRulesManager:
    """Minimal rules manager for testing."""

    def __init__(self, rules=None):
        self._rules = rules or []

    def get_enabled_rules(self):
        return [r for r in self._rules if r.enabled]

    def get_all_rules(self):
        return self._rules

    def get_rule(self, rule_id):
        return next((r for r in self._rules if r.id == rule_id), None)


def fired(rule_id="error_rate", severity=Severity.WARNING, message="boom", category="system",
          channels=(), cooldown_seconds=0, **metadata):
    return RuleOutcome(rule_id=rule_id, fired=True, severity=severity, title=rule_id.replace("_", " "),
                       message=message, category=category, metadata=metadata,
                       channels=frozenset(channels), cooldown_seconds=cooldown_seconds)


def cleared(rule_id="error_rate", cooldown_seconds=0):
    return RuleOutcome(rule_id=rule_id, fired=False, cooldown_seconds=cooldown_seconds)


def make_rule(rule_id, condition, source="error_counts", **kwargs):
    return Rule(id=rule_id, name=rule_id, source=source, condition=condition, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    os.unlink(db_path)
