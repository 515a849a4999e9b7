"""Built-in alert rules.

Each condition is a pure function ``(snapshot, thresholds)`` returning
``None`` (no opinion this cycle), ``False`` (condition cleared) or a
``Finding``. Metric rules read database-derived snapshots; log rules read
the typed records of a ``LogSnapshot`` and carry a notification cooldown
because they re-match the same recent window on every cycle.
"""
from models.alerts import Finding, Rule
from models.enums import Severity, Category
from models.signals import (
    LogSnapshot, ErrorCountSnapshot, ApiLatencySnapshot, CancellationSnapshot,
    RevenueSnapshot, DatabaseSnapshot,
)

LOG_RULE_COOLDOWN = 30 * 60


def _graded(value, critical_at):
    return Severity.CRITICAL if value > critical_at else Severity.WARNING


# ── Metric rules ─────────────────────────────────────────

def error_rate(snapshot, t):
    if snapshot.total == 0:
        return None
    rate = snapshot.error_rate
    if rate <= t["error_rate_threshold"]:
        return False
    return Finding(
        message=f"Error rate {rate:.2f}% ({snapshot.errors}/{snapshot.total} in the last hour)",
        severity=_graded(rate, t["error_rate_critical"]),
        metadata={"error_rate": round(rate, 2), "errors": snapshot.errors, "total": snapshot.total},
    )


def slow_api(snapshot, t):
    if not snapshot.durations_ms:
        return None
    avg = snapshot.average_ms
    if avg <= t["slow_api_threshold"]:
        return False
    slow = snapshot.slow_count(t["slow_api_threshold"])
    return Finding(
        message=f"Average response time {avg:.0f}ms ({slow} slow requests in the last 5 minutes)",
        severity=_graded(avg, t["slow_api_critical"]),
        metadata={"avg_response_ms": round(avg), "slow_count": slow, "count": len(snapshot.durations_ms)},
    )


def cancellation_spike(snapshot, t):
    failures = snapshot.failures
    if failures <= t["cancellation_spike_threshold"]:
        return False
    return Finding(
        message=f"{failures} cancellation failures in the last hour",
        severity=_graded(failures, t["cancellation_spike_critical"]),
        metadata={"failures": failures},
    )


def revenue_drop(snapshot, t):
    change = snapshot.change_percent
    if snapshot.previous_revenue <= t["revenue_min_baseline"] or change >= -t["revenue_drop_threshold"]:
        return False
    return Finding(
        message=(
            f"Revenue down {abs(change):.1f}% "
            f"({snapshot.current_revenue:,.0f} vs {snapshot.previous_revenue:,.0f} the hour before)"
        ),
        severity=_graded(-change, t["revenue_drop_critical"]),
        metadata={
            "current_revenue": snapshot.current_revenue,
            "previous_revenue": snapshot.previous_revenue,
            "change_percent": round(change, 2),
        },
    )


def db_slow(snapshot, t):
    # Unreachable database is db_error's business
    if not snapshot.reachable or snapshot.response_ms is None:
        return None
    ms = snapshot.response_ms
    if ms <= t["db_response_threshold"]:
        return False
    return Finding(
        message=f"Database response time {ms:.0f}ms",
        severity=_graded(ms, t["db_response_critical"]),
        metadata={"response_ms": round(ms)},
    )


def db_error(snapshot, t):
    if snapshot.reachable:
        return False
    return Finding(
        message=f"Cannot connect to the database: {snapshot.error}",
        metadata={"error": snapshot.error},
    )


# ── Log rules ────────────────────────────────────────────

def _log_rule(check):
    """Empty log windows carry no information either way."""
    def condition(snapshot, t):
        if not snapshot.records:
            return None
        return check(snapshot, t) or False
    condition.__name__ = check.__name__
    condition.__doc__ = check.__doc__
    return condition


@_log_rule
def log_error_burst(snapshot, t):
    errors = [r for r in snapshot.since(5) if r.is_error]
    if len(errors) > t["log_error_burst_threshold"]:
        return Finding(
            message=f"{len(errors)} errors logged in the last 5 minutes",
            metadata={"errors": len(errors), "sample": [r.message for r in errors[-5:]]},
        )


@_log_rule
def db_connection_failure(snapshot, t):
    hits = [r for r in snapshot.records if r.component == "database" and r.event == "connection_failed"]
    if hits:
        return Finding(message=f"Database connection failures logged ({len(hits)})",
                       metadata={"count": len(hits), "last": hits[-1].message})


@_log_rule
def missing_booking_data(snapshot, t):
    hits = [r for r in snapshot.records if r.event == "missing_booking_data"]
    if hits:
        return Finding(message=f"{len(hits)} bookings logged without hotel name or price",
                       metadata={"count": len(hits)})


@_log_rule
def schema_violation(snapshot, t):
    hits = [r for r in snapshot.records if r.event == "schema_violation"]
    if hits:
        return Finding(message=f"Invalid data structure detected ({len(hits)} records)",
                       metadata={"count": len(hits), "last": hits[-1].message})


@_log_rule
def scraper_failure(snapshot, t):
    hits = [r for r in snapshot.records if r.component == "scraper" and r.is_error]
    if len(hits) >= t["scraper_failure_threshold"]:
        return Finding(message=f"Competitor scraper failed {len(hits)} times",
                       metadata={"count": len(hits)})


@_log_rule
def slow_request(snapshot, t):
    limit = t["slow_request_threshold"]
    slow = [r for r in snapshot.records if r.duration_ms is not None and r.duration_ms > limit]
    if slow:
        worst = max(r.duration_ms for r in slow)
        return Finding(message=f"{len(slow)} requests slower than {limit:.0f}ms (worst {worst:.0f}ms)",
                       metadata={"count": len(slow), "worst_ms": worst})


@_log_rule
def zenith_push_failure(snapshot, t):
    hits = [r for r in snapshot.records if r.component == "zenith" and r.event == "push_failed"]
    if hits:
        return Finding(message=f"Zenith push failed {len(hits)} times",
                       metadata={"count": len(hits)})


@_log_rule
def unauthorized_access(snapshot, t):
    hits = [r for r in snapshot.records if r.status_code in (401, 403) and r.level == "warn"]
    if hits:
        return Finding(message=f"{len(hits)} unauthorized access attempts (401/403)",
                       metadata={"count": len(hits)})


BUILTIN_RULES = [
    Rule(id="error_rate", name="High error rate", source=ErrorCountSnapshot.source,
         condition=error_rate, category=Category.SYSTEM.value,
         description="Share of error log lines in the last hour above threshold"),
    Rule(id="slow_api", name="Slow API", source=ApiLatencySnapshot.source,
         condition=slow_api, category=Category.API.value,
         description="Average HTTP response time over the last 5 minutes above threshold"),
    Rule(id="cancellation_spike", name="Cancellation failure spike", source=CancellationSnapshot.source,
         condition=cancellation_spike, category=Category.CANCELLATIONS.value,
         description="Cancellation failures in the last hour above threshold"),
    Rule(id="revenue_drop", name="Revenue drop", source=RevenueSnapshot.source,
         condition=revenue_drop, category=Category.REVENUE.value,
         description="Hour-over-hour revenue drop above threshold"),
    Rule(id="db_slow", name="Slow database", source=DatabaseSnapshot.source,
         condition=db_slow, category=Category.DATABASE.value,
         description="Database round-trip time above threshold"),
    Rule(id="db_error", name="Database connection error", source=DatabaseSnapshot.source,
         condition=db_error, severity=Severity.CRITICAL, category=Category.DATABASE.value,
         description="Database probe failed"),
    Rule(id="log_error_burst", name="High error rate in logs", source=LogSnapshot.source,
         condition=log_error_burst, severity=Severity.CRITICAL, category=Category.SYSTEM.value,
         cooldown_seconds=LOG_RULE_COOLDOWN, description="More error lines than threshold in 5 minutes"),
    Rule(id="db_connection_failure", name="Database connection failure", source=LogSnapshot.source,
         condition=db_connection_failure, severity=Severity.CRITICAL, category=Category.DATABASE.value,
         cooldown_seconds=LOG_RULE_COOLDOWN, description="Failed to connect to database"),
    Rule(id="missing_booking_data", name="Missing booking data", source=LogSnapshot.source,
         condition=missing_booking_data, severity=Severity.CRITICAL, category=Category.DATA_QUALITY.value,
         cooldown_seconds=LOG_RULE_COOLDOWN, description="Booking without hotel name or price"),
    Rule(id="schema_violation", name="Schema violation", source=LogSnapshot.source,
         condition=schema_violation, severity=Severity.CRITICAL, category=Category.DATA_QUALITY.value,
         cooldown_seconds=LOG_RULE_COOLDOWN, description="Invalid data structure detected"),
    Rule(id="scraper_failure", name="Scraper failure", source=LogSnapshot.source,
         condition=scraper_failure, category=Category.INTEGRATIONS.value,
         cooldown_seconds=LOG_RULE_COOLDOWN, description="Competitor scraper failed multiple times"),
    Rule(id="slow_request", name="Slow API response", source=LogSnapshot.source,
         condition=slow_request, category=Category.API.value,
         cooldown_seconds=LOG_RULE_COOLDOWN, description="Single response time over threshold"),
    Rule(id="zenith_push_failure", name="Zenith push failure", source=LogSnapshot.source,
         condition=zenith_push_failure, severity=Severity.CRITICAL, category=Category.INTEGRATIONS.value,
         cooldown_seconds=LOG_RULE_COOLDOWN, description="Failed to push to Zenith"),
    Rule(id="unauthorized_access", name="Unauthorized access attempt", source=LogSnapshot.source,
         condition=unauthorized_access, severity=Severity.CRITICAL, category=Category.SECURITY.value,
         cooldown_seconds=LOG_RULE_COOLDOWN, description="401/403 responses logged"),
]


# Synthetic alerts the API can inject to check the notification path end to end
TEST_ALERTS = {
    "error_rate": {
        "severity": Severity.WARNING, "category": Category.SYSTEM.value,
        "title": "Test: High error rate", "message": "This is a test alert for a high error rate",
    },
    "slow_api": {
        "severity": Severity.WARNING, "category": Category.API.value,
        "title": "Test: Slow API", "message": "This is a test alert for a slow API",
    },
    "cancellation_spike": {
        "severity": Severity.CRITICAL, "category": Category.CANCELLATIONS.value,
        "title": "Test: Cancellation failure spike", "message": "This is a test alert for cancellation failures",
    },
}
