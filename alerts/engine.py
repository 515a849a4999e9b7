"""Alert evaluation engine."""
import logging
from concurrent.futures import ThreadPoolExecutor

from models.alerts import Finding, RuleOutcome

logger = logging.getLogger("opswatch.alerts.engine")


class RuleEngine:
    """Evaluates rule conditions against the snapshots of one cycle.

    Conditions are pure and read-only over their snapshot, so they run
    concurrently. A condition that raises is logged and skipped for this
    cycle without affecting the other rules.
    """

    def __init__(self, rules_manager, max_workers=4):
        self.rules_manager = rules_manager
        self.max_workers = max_workers
        self.last_failures = {}

    def _run_condition(self, rule, snapshot, thresholds):
        result = rule.condition(snapshot, thresholds)
        if result is None:
            return None
        if result is False:
            return RuleOutcome.cleared(rule)
        if isinstance(result, Finding):
            return RuleOutcome.from_finding(rule, result)
        raise TypeError(f"condition returned {type(result).__name__}, expected Finding, False or None")

    def evaluate(self, signals, thresholds):
        """Evaluate all enabled rules whose source is present this cycle."""
        runnable = [
            (rule, signals.get(rule.source))
            for rule in self.rules_manager.get_enabled_rules()
            if rule.source in signals
        ]
        outcomes = []
        failures = {}
        if not runnable:
            self.last_failures = failures
            return outcomes

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="opswatch-rule") as pool:
            futures = [
                (rule, pool.submit(self._run_condition, rule, snapshot, thresholds))
                for rule, snapshot in runnable
            ]
            for rule, future in futures:
                try:
                    outcome = future.result()
                except Exception as e:
                    failures[rule.id] = str(e)
                    logger.error(f"Rule {rule.id} failed: {e}", exc_info=True)
                    continue
                if outcome is not None:
                    outcomes.append(outcome)

        self.last_failures = failures
        logger.debug(f"Evaluated {len(runnable)} rules: {len(outcomes)} outcomes, {len(failures)} failures")
        return outcomes

    def preview(self, signals, thresholds):
        """Dry-run every rule (enabled or not) without touching alert state."""
        results = []
        for rule in self.rules_manager.get_all_rules():
            entry = {
                "rule_id": rule.id,
                "name": rule.name,
                "source": rule.source,
                "enabled": rule.enabled,
                "would_fire": None,
                "severity": rule.severity.value,
                "message": "",
                "error": None,
            }
            if rule.source in signals:
                try:
                    outcome = self._run_condition(rule, signals.get(rule.source), thresholds)
                except Exception as e:
                    entry["error"] = str(e)
                else:
                    if outcome is not None:
                        entry["would_fire"] = outcome.fired
                        entry["severity"] = outcome.severity.value
                        entry["message"] = outcome.message
            results.append(entry)
        return results
