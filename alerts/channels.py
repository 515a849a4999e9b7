"""Alert notification channels.

Every channel has a ``name`` (the id rules use to address it) and a
``send(alert)`` method. Channels raise on transport failure; the router
catches and logs per channel.
"""
import json
import logging
import queue
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from rich.console import Console
from rich.markup import escape

logger = logging.getLogger("opswatch.alerts.channels")

_SEVERITY_EMOJI = {
    "critical": ":red_circle:",
    "warning": ":large_orange_circle:",
}


@runtime_checkable
class AlertChannel(Protocol):
    name: str

    def send(self, alert) -> None: ...


def _status_label(alert):
    return "RESOLVED" if not alert.is_active else alert.severity.value.upper()


class ConsoleChannel:
    """Print alerts to terminal with rich formatting."""

    name = "console"

    def __init__(self, console=None):
        self.console = console or Console()

    def send(self, alert):
        severity_styles = {
            "CRITICAL": "bold white on red",
            "WARNING": "bold yellow",
            "RESOLVED": "bold green",
        }
        label = _status_label(alert)
        style = severity_styles.get(label, "")
        self.console.print(f"[{style}] [{label}] {escape(alert.title)}: {escape(alert.message)}[/]")


class FileChannel:
    """Append alerts to a JSON lines log file."""

    name = "file"

    def __init__(self, log_path="data/alerts.jsonl"):
        self.log_path = Path(log_path)
        self._lock = threading.Lock()

    def send(self, alert):
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(alert.to_dict(), ensure_ascii=False)
        with self._lock, open(self.log_path, "a", encoding="utf-8") as f:
            f.write(line + "\n")


class SlackChannel:
    """Chat notifications through a Slack incoming webhook."""

    name = "slack"

    def __init__(self, webhook):
        self.webhook = webhook

    def format(self, alert):
        label = _status_label(alert)
        emoji = ":white_check_mark:" if label == "RESOLVED" else _SEVERITY_EMOJI.get(alert.severity.value, "")
        lines = [
            f"{emoji} *{alert.title}* [{label}]",
            alert.message,
            f"Category: {alert.category} | occurrences: {alert.occurrence_count}",
        ]
        return "\n".join(lines)

    def send(self, alert):
        if not self.webhook.is_configured():
            logger.debug("Slack webhook not configured - skipping")
            return
        self.webhook.send_message(self.format(alert))


class EmailChannel:
    """E-mail alerts via SMTP."""

    name = "email"

    def __init__(self, sender):
        self.sender = sender

    def send(self, alert):
        self.sender.send_alert(alert)


class BroadcastChannel:
    """In-process fan-out to real-time subscribers (the server-sent events stream).

    Each subscriber owns a bounded queue; a subscriber that stops reading
    loses events instead of blocking the sender.
    """

    name = "broadcast"

    def __init__(self, queue_size=100):
        self.queue_size = queue_size
        self._subscribers = set()
        self._lock = threading.Lock()

    def subscribe(self):
        q = queue.Queue(maxsize=self.queue_size)
        with self._lock:
            self._subscribers.add(q)
        logger.debug(f"Broadcast subscriber added ({len(self._subscribers)} total)")
        return q

    def unsubscribe(self, q):
        with self._lock:
            self._subscribers.discard(q)

    @property
    def subscriber_count(self):
        with self._lock:
            return len(self._subscribers)

    def publish(self, event, payload):
        with self._lock:
            subscribers = list(self._subscribers)
        message = {"event": event, "data": payload}
        for q in subscribers:
            try:
                q.put_nowait(message)
            except queue.Full:
                logger.warning("Broadcast subscriber queue full - dropping event")
        return len(subscribers)

    def send(self, alert):
        event = "alert_resolved" if not alert.is_active else "alert"
        self.publish(event, alert.to_dict())
