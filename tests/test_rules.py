"""Tests for built-in rule conditions and YAML rule overrides."""
from datetime import datetime, timedelta, timezone

import pytest

from alerts import rules as r
from alerts.rules_manager import RulesManager
from config.thresholds import DEFAULT_THRESHOLDS as T
from models.alerts import Finding
from models.enums import Severity
from models.signals import (
    LogRecord, LogSnapshot, ErrorCountSnapshot, ApiLatencySnapshot, RevenueSnapshot, DatabaseSnapshot,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _logs(*records):
    return LogSnapshot(captured_at=NOW, records=tuple(records))


def _rec(minutes_ago=1, **kwargs):
    return LogRecord(timestamp=NOW - timedelta(minutes=minutes_ago), **kwargs)


# ── Metric rules ────────────────────────────────────────

def test_error_rate_grades():
    assert r.error_rate(ErrorCountSnapshot(total=100, errors=5), T) is False
    assert r.error_rate(ErrorCountSnapshot(total=100, errors=7), T).severity == Severity.WARNING
    finding = r.error_rate(ErrorCountSnapshot(total=100, errors=12), T)
    assert finding.severity == Severity.CRITICAL
    assert finding.metadata["error_rate"] == 12.0


def test_error_rate_without_data_abstains():
    assert r.error_rate(ErrorCountSnapshot(total=0, errors=0), T) is None


def test_slow_api():
    assert r.slow_api(ApiLatencySnapshot(durations_ms=()), T) is None
    assert r.slow_api(ApiLatencySnapshot(durations_ms=(100.0, 300.0)), T) is False
    finding = r.slow_api(ApiLatencySnapshot(durations_ms=(2500.0, 2600.0, 100.0, 3000.0)), T)
    assert finding.severity == Severity.WARNING
    assert finding.metadata["slow_count"] == 3
    assert r.slow_api(ApiLatencySnapshot(durations_ms=(3500.0,)), T).severity == Severity.CRITICAL


def test_revenue_drop():
    assert r.revenue_drop(RevenueSnapshot(current_revenue=100, previous_revenue=500), T) is False
    assert r.revenue_drop(RevenueSnapshot(current_revenue=9000, previous_revenue=10000), T) is False
    warn = r.revenue_drop(RevenueSnapshot(current_revenue=6000, previous_revenue=10000), T)
    assert warn.severity == Severity.WARNING
    crit = r.revenue_drop(RevenueSnapshot(current_revenue=4000, previous_revenue=10000), T)
    assert crit.severity == Severity.CRITICAL
    assert crit.metadata["change_percent"] == -60.0


def test_db_slow_ignores_unreachable():
    assert r.db_slow(DatabaseSnapshot(error="refused"), T) is None
    assert r.db_slow(DatabaseSnapshot(response_ms=50), T) is False
    assert r.db_slow(DatabaseSnapshot(response_ms=1500), T).severity == Severity.WARNING


def test_db_error_resolves_when_reachable():
    assert r.db_error(DatabaseSnapshot(response_ms=3), T) is False
    assert isinstance(r.db_error(DatabaseSnapshot(error="refused"), T), Finding)


# ── Log rules ───────────────────────────────────────────

def test_log_rules_abstain_on_empty_window():
    for rule in r.BUILTIN_RULES:
        if rule.source == LogSnapshot.source:
            assert rule.condition(_logs(), T) is None, rule.id


def test_log_error_burst_counts_last_five_minutes():
    recent = [_rec(minutes_ago=1, level="error", message=f"e{i}") for i in range(11)]
    old = [_rec(minutes_ago=8, level="error") for _ in range(20)]
    finding = r.log_error_burst(_logs(*old, *recent), T)
    assert finding.metadata["errors"] == 11
    assert r.log_error_burst(_logs(*old, *recent[:10]), T) is False


def test_db_connection_failure():
    hit = _rec(level="error", message="db down", component="database", event="connection_failed")
    assert r.db_connection_failure(_logs(hit), T).metadata["count"] == 1
    assert r.db_connection_failure(_logs(_rec(level="info")), T) is False


def test_scraper_failure_threshold():
    hits = [_rec(level="error", component="scraper") for _ in range(3)]
    assert r.scraper_failure(_logs(*hits), T).metadata["count"] == 3
    assert r.scraper_failure(_logs(*hits[:2]), T) is False


def test_slow_request():
    finding = r.slow_request(_logs(_rec(duration_ms=7000), _rec(duration_ms=100)), T)
    assert finding.metadata == {"count": 1, "worst_ms": 7000}


def test_unauthorized_access_needs_warn_level():
    assert r.unauthorized_access(_logs(_rec(level="warn", status_code=403)), T).metadata["count"] == 1
    assert r.unauthorized_access(_logs(_rec(level="info", status_code=401)), T) is False


def test_builtin_rule_ids_unique():
    ids = [rule.id for rule in r.BUILTIN_RULES]
    assert len(ids) == len(set(ids)) == 14
    assert all(rule.cooldown_seconds == r.LOG_RULE_COOLDOWN
               for rule in r.BUILTIN_RULES if rule.source == LogSnapshot.source)


# ── Rules manager ───────────────────────────────────────

def test_default_rules_file_loads():
    manager = RulesManager()
    assert len(manager.get_all_rules()) == 14
    assert "email" in manager.get_rule("db_error").channels


def test_overrides_apply(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(
        "rules:\n"
        "  - id: slow_api\n"
        "    enabled: false\n"
        "  - id: error_rate\n"
        "    severity: high\n"
        "    channels: [slack]\n"
        "    cooldown_minutes: 5\n"
        "  - id: not_a_rule\n"
        "    enabled: false\n"
    )
    manager = RulesManager(path)
    assert manager.get_rule("slow_api").enabled is False
    assert "slow_api" not in [x.id for x in manager.get_enabled_rules()]

    rule = manager.get_rule("error_rate")
    assert rule.severity == Severity.CRITICAL
    assert rule.channels == frozenset({"slack"})
    assert rule.cooldown_seconds == 300
    # Conditions are never replaced
    assert rule.condition is r.error_rate
    assert manager.get_rule("not_a_rule") is None


def test_missing_rules_file_uses_builtins(tmp_path):
    manager = RulesManager(tmp_path / "missing.yaml")
    assert [x.id for x in manager.get_all_rules()] == [x.id for x in r.BUILTIN_RULES]


@pytest.mark.parametrize("raw,expected", [
    ("critical", Severity.CRITICAL),
    ("WARNING", Severity.WARNING),
    ("high", Severity.CRITICAL),
    ("medium", Severity.WARNING),
    ("low", Severity.WARNING),
])
def test_severity_parse(raw, expected):
    assert Severity.parse(raw) == expected


def test_severity_parse_rejects_unknown():
    with pytest.raises(ValueError):
        Severity.parse("catastrophic")
