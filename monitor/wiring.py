"""Builds the full component graph from a loaded config dict."""
import logging

from alerts.channels import ConsoleChannel, FileChannel, SlackChannel, EmailChannel, BroadcastChannel
from alerts.engine import RuleEngine
from alerts.router import NotificationRouter
from alerts.rules_manager import RulesManager
from alerts.store import AlertLifecycleStore
from alerts.suppression import SuppressionPolicy
from config import MIN_INTERVAL_SECONDS
from config.thresholds import ThresholdConfig
from models.database import Database
from monitor.collector import SignalCollector
from monitor.monitor import AlertMonitor
from monitor.providers import LogDirectoryProvider, SqlQueryProvider, DatabaseProbeProvider, sqlite_connector
from monitor.scheduler import MonitorScheduler

logger = logging.getLogger("opswatch.wiring")


def build_channels(config, console=True):
    notif = config.get("notifications", {})
    channels = []
    if console and notif.get("console", True):
        channels.append(ConsoleChannel())
    if notif.get("file", {}).get("enabled", True):
        channels.append(FileChannel(notif["file"].get("path", "data/alerts.jsonl")))
    if notif.get("broadcast", {}).get("enabled", True):
        channels.append(BroadcastChannel(notif.get("broadcast", {}).get("queue_size", 100)))

    slack = config.get("slack", {})
    if slack.get("enabled") and slack.get("webhook_url"):
        from notifications.slack_webhook import SlackWebhook
        channels.append(SlackChannel(SlackWebhook(
            slack["webhook_url"],
            username=slack.get("username", "OpsWatch"),
            icon_emoji=slack.get("icon_emoji", ":rotating_light:"),
        )))

    if config.get("email", {}).get("enabled"):
        from notifications.email_sender import EmailSender
        sender = EmailSender(config)
        if sender.is_configured():
            channels.append(EmailChannel(sender))
        else:
            logger.warning("Email enabled but SMTP settings are incomplete - email channel disabled")
    return channels


def build_providers(config):
    providers_config = config.get("providers", {})
    timeout = config["monitor"].get("provider_timeout_seconds", 10)
    providers = []

    logs = providers_config.get("logs", {})
    if logs.get("enabled"):
        providers.append(LogDirectoryProvider(logs.get("path", "logs"), logs.get("window_minutes", 10)))

    sql = providers_config.get("sql", {})
    if sql.get("enabled"):
        connect = sqlite_connector(sql["database"], timeout=timeout)
        for source, query in sql.get("queries", {}).items():
            providers.append(SqlQueryProvider(source, connect, query))

    probe = providers_config.get("database_probe", {})
    if probe.get("enabled"):
        providers.append(DatabaseProbeProvider(sqlite_connector(probe["database"], timeout=timeout)))

    logger.debug(f"Configured providers: {[p.source for p in providers]}")
    return providers


def build_components(config, console=True):
    """Wire thresholds, rules, store, channels, providers, monitor and scheduler.

    Returns a dict keyed the way ``web.app.create_app`` expects its engines.
    """
    monitor_config = config["monitor"]
    alerts_config = config["alerts"]
    notif = config.get("notifications", {})
    max_workers = monitor_config.get("max_workers", 4)

    thresholds = ThresholdConfig(config.get("thresholds"))
    rules = RulesManager(alerts_config.get("rules_path"))
    engine = RuleEngine(rules, max_workers=max_workers)
    store = AlertLifecycleStore(
        history_size=alerts_config.get("history_size", 1000),
        policy=SuppressionPolicy(notify_on_resolve=alerts_config.get("notify_on_resolve", True)),
    )

    channels = build_channels(config, console=console)
    router = NotificationRouter(
        channels,
        send_timeout=notif.get("send_timeout_seconds", 10),
        max_workers=notif.get("max_workers", 4),
    )
    collector = SignalCollector(
        build_providers(config),
        timeout=monitor_config.get("provider_timeout_seconds", 10),
        max_workers=max_workers,
    )

    db = None
    if config.get("database", {}).get("enabled"):
        db = Database(config["database"]["path"]).connect()

    monitor = AlertMonitor(collector, engine, store, router, thresholds, sink=db)
    scheduler = MonitorScheduler(
        monitor.run_cycle,
        interval_seconds=monitor_config.get("interval_seconds", 60),
        min_interval=MIN_INTERVAL_SECONDS,
    )

    return {
        "config": config,
        "thresholds": thresholds,
        "rules": rules,
        "engine": engine,
        "store": store,
        "router": router,
        "collector": collector,
        "broadcast": router.channels.get(BroadcastChannel.name),
        "db": db,
        "monitor": monitor,
        "scheduler": scheduler,
    }


def shutdown_components(components):
    scheduler = components.get("scheduler")
    if scheduler is not None:
        scheduler.stop()
    components["collector"].shutdown()
    components["router"].shutdown()
    if components.get("db") is not None:
        components["db"].close()
