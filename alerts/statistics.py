"""Read-only rollups over active alerts and history."""
from collections import Counter
from datetime import timedelta

from models.alerts import utcnow
from models.enums import Severity

WINDOW = timedelta(hours=24)
TOP_TYPES = 5


def compute_statistics(active, history, now=None):
    """Summarize alert activity.

    Pure function of its inputs: ``active`` is a list of alerts, ``history``
    an iterable of history entries. Single pass over the history.
    """
    now = now or utcnow()
    cutoff = now - WINDOW

    active_by_severity = Counter(a.severity.value for a in active)

    total = 0
    by_severity = Counter()
    by_category = Counter()
    type_counts = Counter()
    type_last_seen = {}
    for entry in history:
        if entry.recorded_at < cutoff:
            continue
        alert = entry.alert
        total += 1
        by_severity[alert.severity.value] += 1
        by_category[alert.category] += 1
        type_counts[alert.type] += 1
        last = type_last_seen.get(alert.type)
        if last is None or entry.recorded_at > last:
            type_last_seen[alert.type] = entry.recorded_at

    ranked = sorted(
        type_counts.items(),
        key=lambda item: (item[1], type_last_seen[item[0]]),
        reverse=True,
    )
    return {
        "active_alerts": len(active),
        "active_by_severity": {s.value: active_by_severity.get(s.value, 0) for s in Severity},
        "total_24h": total,
        "critical_24h": by_severity.get(Severity.CRITICAL.value, 0),
        "warning_24h": by_severity.get(Severity.WARNING.value, 0),
        "by_category": dict(by_category),
        "most_frequent": [{"type": t, "count": c} for t, c in ranked[:TOP_TYPES]],
    }


def summarize(active, history, now=None):
    """Compact view for dashboards: active counts plus the 24h rollup."""
    stats = compute_statistics(active, history, now)
    return {
        "active": {
            "total": len(active),
            "critical": stats["active_by_severity"][Severity.CRITICAL.value],
            "warning": stats["active_by_severity"][Severity.WARNING.value],
            "unacknowledged": sum(1 for a in active if not a.acknowledged),
        },
        "last_24h": {
            "total": stats["total_24h"],
            "critical": stats["critical_24h"],
            "warning": stats["warning_24h"],
        },
        "top_categories": stats["by_category"],
        "most_frequent": stats["most_frequent"],
    }
