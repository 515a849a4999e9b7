"""Notification suppression for persisting conditions."""
import logging
from datetime import timedelta

logger = logging.getLogger("opswatch.alerts.suppression")


class SuppressionPolicy:
    """Decides whether an outcome should produce a notification.

    Primary policy (time-independent):
      - new alert for the type: notify
      - same severity as the active alert: no notification
      - different severity: notify (escalation and de-escalation)
      - cleared with an active alert: notify only if ``notify_on_resolve``
      - cleared with nothing active: nothing to do

    Secondary policy: rules with ``cooldown_seconds`` keep a last-notified
    timestamp per type, and a firing that would notify inside the cooldown
    is turned into a silent state change. Callers hold the store lock, so
    the timestamps are never updated concurrently.
    """

    def __init__(self, notify_on_resolve=True):
        self.notify_on_resolve = notify_on_resolve
        self._last_notified = {}

    def in_cooldown(self, outcome, now):
        if outcome.cooldown_seconds <= 0:
            return False
        last = self._last_notified.get(outcome.rule_id)
        if last is None:
            return False
        return now - last < timedelta(seconds=outcome.cooldown_seconds)

    def should_notify(self, outcome, existing, now):
        if not outcome.fired:
            return existing is not None and self.notify_on_resolve

        if self.in_cooldown(outcome, now):
            logger.debug(f"{outcome.rule_id}: notification suppressed by cooldown")
            return False

        if existing is None:
            return True
        return existing.severity != outcome.severity

    def mark_notified(self, alert_type, now):
        self._last_notified[alert_type] = now

    def last_notified(self, alert_type):
        return self._last_notified.get(alert_type)
