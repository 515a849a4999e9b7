"""Fan-out of alert transitions to notification channels."""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

from models.enums import Severity

logger = logging.getLogger("opswatch.alerts.router")

BROADCAST = "broadcast"
EMAIL = "email"
EMAIL_ESCALATION_CATEGORIES = frozenset({"database", "revenue"})


class NotificationRouter:
    """Best-effort, non-blocking delivery of alerts to channels.

    ``dispatch`` returns immediately with one future per targeted channel;
    each future resolves to True on success and False on failure or
    timeout. Nothing raised by a channel reaches the caller or the other
    channels.
    """

    def __init__(self, channels=None, send_timeout=10, max_workers=4):
        self.channels = {}
        self.send_timeout = send_timeout
        # Delivery threads wait on sends with the timeout; send threads run the transports.
        self._delivery_pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="opswatch-notify")
        self._send_pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="opswatch-send")
        for channel in channels or []:
            self.register(channel)

    def register(self, channel):
        self.channels[channel.name] = channel
        logger.debug(f"Registered channel: {channel.name}")

    def targets(self, alert):
        """Channel ids for an alert: its rule's channels plus the severity routing policy."""
        names = set(alert.channels)
        if alert.severity == Severity.CRITICAL:
            names.add(BROADCAST)
            if alert.category in EMAIL_ESCALATION_CATEGORIES:
                names.add(EMAIL)
        return sorted(names)

    def dispatch(self, transition):
        if not transition.notify or transition.alert is None:
            return []
        return self.send(transition.alert)

    def send(self, alert, channel_names=None):
        futures = []
        for name in channel_names or self.targets(alert):
            channel = self.channels.get(name)
            if channel is None:
                logger.debug(f"No channel registered for '{name}', skipping {alert.type}")
                continue
            futures.append(self._delivery_pool.submit(self._deliver, channel, alert))
        return futures

    def _deliver(self, channel, alert):
        future = self._send_pool.submit(channel.send, alert)
        try:
            future.result(timeout=self.send_timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning(f"Channel {channel.name} timed out after {self.send_timeout}s for {alert.id}")
            return False
        except Exception as e:
            logger.warning(f"Channel {channel.name} failed for {alert.id}: {e}")
            return False
        logger.debug(f"Delivered {alert.id} via {channel.name}")
        return True

    def shutdown(self, wait=False):
        self._delivery_pool.shutdown(wait=wait)
        self._send_pool.shutdown(wait=wait)
