"""Alert rules loading and management."""
import dataclasses
import logging
import yaml
from pathlib import Path

from alerts.rules import BUILTIN_RULES
from config import DEFAULT_RULES_PATH
from models.enums import Severity

logger = logging.getLogger("opswatch.alerts.rules")


class RulesManager:
    """Built-in rule set with per-rule overrides from YAML.

    The override file can disable a rule, rename it, change its default
    severity, its channels or its notification cooldown. Conditions
    themselves are code and cannot be replaced from YAML.
    """

    def __init__(self, rules_path=None, builtin_rules=None):
        self.rules_path = Path(rules_path) if rules_path else DEFAULT_RULES_PATH
        self._builtin = list(builtin_rules if builtin_rules is not None else BUILTIN_RULES)
        self.rules = list(self._builtin)
        self.load()

    def load(self):
        if not self.rules_path.exists():
            logger.warning(f"Alert rules file not found: {self.rules_path}, using built-in defaults")
            return
        with open(self.rules_path) as f:
            data = yaml.safe_load(f) or {}
        self.rules = self._apply_overrides(data.get("rules", []))
        enabled = len(self.get_enabled_rules())
        logger.info(f"Loaded {len(self.rules)} rules ({enabled} enabled)")

    def _apply_overrides(self, raw_rules):
        by_id = {r.id: r for r in self._builtin}
        for r in raw_rules:
            rule_id = r.get("id")
            if rule_id not in by_id:
                logger.warning(f"Override for unknown rule ignored: {rule_id}")
                continue
            changes = {}
            for key in ("name", "description", "enabled"):
                if key in r:
                    changes[key] = r[key]
            if "severity" in r:
                try:
                    changes["severity"] = Severity.parse(r["severity"])
                except ValueError:
                    logger.warning(f"Invalid severity in rule {rule_id}: {r['severity']}")
            if "channels" in r:
                changes["channels"] = frozenset(r["channels"] or [])
            if "cooldown_minutes" in r:
                changes["cooldown_seconds"] = int(float(r["cooldown_minutes"]) * 60)
            by_id[rule_id] = dataclasses.replace(by_id[rule_id], **changes)
        return [by_id[r.id] for r in self._builtin]

    def get_enabled_rules(self):
        return [r for r in self.rules if r.enabled]

    def get_rule(self, rule_id):
        for r in self.rules:
            if r.id == rule_id:
                return r
        return None

    def get_all_rules(self):
        return self.rules
