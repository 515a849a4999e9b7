"""Alert system module."""
from alerts.engine import RuleEngine
from alerts.rules_manager import RulesManager
from alerts.store import AlertLifecycleStore
from alerts.suppression import SuppressionPolicy
from alerts.router import NotificationRouter
from alerts.statistics import compute_statistics
from alerts.channels import ConsoleChannel, FileChannel, SlackChannel, EmailChannel, BroadcastChannel
