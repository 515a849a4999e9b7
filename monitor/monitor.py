"""AlertMonitor - Central orchestrator for collecting, evaluating, and notifying."""
import logging

from alerts.rules import TEST_ALERTS
from alerts.statistics import compute_statistics, summarize
from models.alerts import CycleResult, RuleOutcome, utcnow
from models.enums import TransitionKind
from models.signals import CycleSignals

logger = logging.getLogger("opswatch.monitor")


class ActiveAlertConflict(Exception):
    """A real alert of the requested type is active; a synthetic one would overwrite it."""

    def __init__(self, alert):
        self.alert = alert
        super().__init__(f"{alert.type} is already active ({alert.id}); resolve it before injecting a test alert")


class AlertMonitor:
    """Runs evaluation cycles and the manual operations exposed to the API.

    State changes go through the store first; the transitions it returns
    are then handed to the router and to the optional sink. Neither of
    those can fail a cycle.
    """

    def __init__(self, collector, engine, store, router, thresholds, sink=None):
        self.collector = collector
        self.engine = engine
        self.store = store
        self.router = router
        self.thresholds = thresholds
        self.sink = sink
        self.last_result = None

    def run_cycle(self):
        """Collect signals, evaluate rules, apply outcomes, dispatch notifications."""
        result = CycleResult(started_at=utcnow())
        signals, result.provider_failures = self.collector.collect()
        result.outcomes = self.engine.evaluate(signals, self.thresholds.snapshot())
        result.rule_failures = dict(self.engine.last_failures)

        for outcome in result.outcomes:
            transition = self.store.apply(outcome)
            result.transitions.append(transition)
            self._after_transition(transition)

        result.finished_at = utcnow()
        self.last_result = result
        changed = [t for t in result.transitions if t.kind not in (TransitionKind.NOOP, TransitionKind.CONFIRMED)]
        logger.info(
            f"Cycle done: {len(signals)} sources, {len(result.outcomes)} outcomes, "
            f"{len(changed)} changes, {len(result.notified)} notifications, "
            f"{len(result.provider_failures)} provider failures, {len(result.rule_failures)} rule failures"
        )
        return result

    def _after_transition(self, transition):
        """Dispatch and persist one transition. Returns the delivery futures, if any."""
        deliveries = self.router.dispatch(transition) if transition.notify else []
        if self.sink is not None and transition.alert is not None and transition.kind not in (
            TransitionKind.NOOP, TransitionKind.CONFIRMED
        ):
            try:
                self.sink.save_transition(transition)
            except Exception as e:
                logger.error(f"Failed to persist {transition.kind.value} for {transition.alert.id}: {e}")
        return deliveries

    # --- Manual operations ---

    def acknowledge(self, alert_id):
        transition = self.store.acknowledge(alert_id)
        if transition is not None:
            self._after_transition(transition)
        return transition

    def resolve(self, alert_type):
        transition = self.store.resolve_by_type(alert_type)
        if transition is not None:
            self._after_transition(transition)
        return transition

    def create_test_alert(self, alert_type):
        """Inject a synthetic alert straight into the store.

        Returns ``(transition, deliveries)``, or None for unknown types.
        Raises ActiveAlertConflict when a real alert of the type is active.
        """
        template = TEST_ALERTS.get(alert_type)
        if template is None:
            return None
        existing = self.store.get_by_type(alert_type)
        if existing is not None and not existing.metadata.get("test"):
            raise ActiveAlertConflict(existing)
        rule = self.engine.rules_manager.get_rule(alert_type)
        outcome = RuleOutcome(
            rule_id=alert_type,
            fired=True,
            severity=template["severity"],
            title=template["title"],
            message=template["message"],
            category=template["category"],
            metadata={"test": True},
            channels=frozenset(rule.channels) if rule is not None else frozenset(),
        )
        transition = self.store.apply(outcome)
        deliveries = self._after_transition(transition)
        logger.info(f"Test alert injected: {alert_type}")
        return transition, deliveries

    # --- Reads ---

    def get_statistics(self, now=None):
        active, history = self.store.snapshot()
        return compute_statistics(active, history, now)

    def get_summary(self, now=None):
        active, history = self.store.snapshot()
        return summarize(active, history, now)

    def preview_rules(self):
        signals, failures = self.collector.collect()
        return self.engine.preview(signals, self.thresholds.snapshot()), failures

    def scan_range(self, start, end):
        """Dry-run the rules over logs from a historical window; alert state is untouched."""
        provider = next((p for p in self.collector.providers if hasattr(p, "fetch_range")), None)
        if provider is None:
            raise LookupError("No log provider configured for range scans")
        snapshot = provider.fetch_range(start, end)
        preview = self.engine.preview(CycleSignals.of(snapshot), self.thresholds.snapshot())
        alerts = [p for p in preview if p["source"] == snapshot.source and p["would_fire"]]
        logger.info(
            f"Range scan {start.isoformat()} .. {end.isoformat()}: "
            f"{len(snapshot.records)} log records, {len(alerts)} rules would fire"
        )
        return {
            "date_range": {"start": start.isoformat(), "end": end.isoformat()},
            "logs_analyzed": len(snapshot.records),
            "alerts_found": len(alerts),
            "alerts": alerts,
        }
