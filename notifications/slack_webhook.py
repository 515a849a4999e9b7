"""Slack incoming-webhook client.

Uses raw HTTP POST via requests, no Slack SDK needed.
"""
import logging
import requests

logger = logging.getLogger("opswatch.notifications.slack")


class SlackWebhook:
    """Thin wrapper around a Slack incoming webhook."""

    def __init__(self, webhook_url: str, username: str = "OpsWatch",
                 icon_emoji: str = ":rotating_light:", timeout: float = 10):
        self.webhook_url = webhook_url
        self.username = username
        self.icon_emoji = icon_emoji
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    def send_message(self, text: str, channel: str = None) -> bool:
        """Post a message. Raises requests.RequestException on transport errors."""
        payload = {
            "text": text,
            "username": self.username,
            "icon_emoji": self.icon_emoji,
        }
        if channel:
            payload["channel"] = channel
        resp = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        logger.debug("Slack message sent")
        return True
