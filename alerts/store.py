"""Authoritative alert state: active alerts by type plus a bounded history ring."""
import dataclasses
import logging
import threading
import uuid
from collections import deque

from alerts.suppression import SuppressionPolicy
from models.alerts import Alert, HistoryEntry, Transition, utcnow
from models.enums import AlertStatus, TransitionKind, RECORDED_TRANSITIONS

logger = logging.getLogger("opswatch.alerts.store")


class AlertLifecycleStore:
    """Single writer for alert state.

    Every mutation runs under one lock and returns a ``Transition``
    describing what changed; sending notifications is left to the caller.
    Readers get copies, never the live objects.
    """

    def __init__(self, history_size=1000, policy=None, clock=None):
        self.history_size = history_size
        self.policy = policy or SuppressionPolicy()
        self._clock = clock or utcnow
        self._active = {}
        self._history = deque(maxlen=history_size)
        self._lock = threading.RLock()

    @staticmethod
    def _new_id(alert_type):
        return f"{alert_type}-{uuid.uuid4().hex[:12]}"

    def _record(self, kind, alert, now):
        if kind in RECORDED_TRANSITIONS:
            self._history.append(HistoryEntry(transition=kind, recorded_at=now, alert=alert.copy()))

    # --- Mutations ---

    def apply(self, outcome):
        """Fold one rule outcome into the active set."""
        with self._lock:
            now = self._clock()
            existing = self._active.get(outcome.rule_id)
            notify = self.policy.should_notify(outcome, existing, now)

            if not outcome.fired:
                if existing is None:
                    return Transition(kind=TransitionKind.NOOP, recorded_at=now)
                return self._resolve(existing, now, notify)

            previous = None
            if existing is None:
                alert = Alert(
                    id=self._new_id(outcome.rule_id),
                    type=outcome.rule_id,
                    severity=outcome.severity,
                    title=outcome.title,
                    message=outcome.message,
                    category=outcome.category,
                    metadata=dict(outcome.metadata),
                    channels=outcome.channels,
                    created_at=now,
                    last_seen_at=now,
                )
                self._active[alert.type] = alert
                kind = TransitionKind.CREATED
                logger.warning(f"Alert created: [{alert.severity.value}] {alert.type}: {alert.message}")
            else:
                alert = existing
                alert.occurrence_count += 1
                alert.last_seen_at = max(now, alert.created_at)
                alert.message = outcome.message
                alert.metadata = dict(outcome.metadata)
                if alert.severity == outcome.severity:
                    return Transition(kind=TransitionKind.CONFIRMED, alert=alert.copy(), recorded_at=now)
                previous = alert.severity
                alert.severity = outcome.severity
                alert.title = outcome.title
                kind = TransitionKind.SEVERITY_CHANGED
                logger.warning(
                    f"Alert severity changed: {alert.type} {previous.value} -> {alert.severity.value}"
                )

            if notify:
                self.policy.mark_notified(alert.type, now)
            self._record(kind, alert, now)
            return Transition(kind=kind, alert=alert.copy(), notify=notify, previous_severity=previous,
                              recorded_at=now)

    def _resolve(self, alert, now, notify):
        alert.status = AlertStatus.RESOLVED
        alert.resolved_at = now
        del self._active[alert.type]
        self._record(TransitionKind.RESOLVED, alert, now)
        logger.info(f"Alert resolved: {alert.type} after {alert.occurrence_count} occurrence(s)")
        return Transition(kind=TransitionKind.RESOLVED, alert=alert.copy(), notify=notify, recorded_at=now)

    def acknowledge(self, alert_id):
        """Mark an active alert as acknowledged. Returns None if no active alert has this id."""
        with self._lock:
            alert = next((a for a in self._active.values() if a.id == alert_id), None)
            if alert is None:
                return None
            if alert.acknowledged:
                return Transition(kind=TransitionKind.NOOP, alert=alert.copy())
            now = self._clock()
            alert.acknowledged = True
            alert.acknowledged_at = now
            self._record(TransitionKind.ACKNOWLEDGED, alert, now)
            logger.info(f"Alert acknowledged: {alert_id} ({alert.type})")
            return Transition(kind=TransitionKind.ACKNOWLEDGED, alert=alert.copy(), recorded_at=now)

    def resolve_by_type(self, alert_type):
        """Manual resolve, independent of rule outcomes. Returns None if nothing is active."""
        with self._lock:
            alert = self._active.get(alert_type)
            if alert is None:
                return None
            return self._resolve(alert, self._clock(), self.policy.notify_on_resolve)

    # --- Reads ---

    def get(self, alert_id):
        with self._lock:
            alert = next((a for a in self._active.values() if a.id == alert_id), None)
            return alert.copy() if alert else None

    def get_by_type(self, alert_type):
        with self._lock:
            alert = self._active.get(alert_type)
            return alert.copy() if alert else None

    def get_active(self):
        """Active alerts, critical first, then most recently seen first."""
        with self._lock:
            alerts = [a.copy() for a in self._active.values()]
        alerts.sort(key=lambda a: (a.severity.rank, a.last_seen_at), reverse=True)
        return alerts

    def get_history(self, limit=100):
        """History entries, newest first."""
        with self._lock:
            entries = list(self._history)
        entries.reverse()
        if limit is not None:
            entries = entries[:max(limit, 0)]
        return [dataclasses.replace(e, alert=e.alert.copy()) for e in entries]

    def snapshot(self):
        """Consistent (active, history) pair for read-only consumers such as statistics."""
        with self._lock:
            active = [a.copy() for a in self._active.values()]
            history = tuple(self._history)
        return active, history

    def __len__(self):
        with self._lock:
            return len(self._active)
