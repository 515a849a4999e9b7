"""Concurrent, time-bounded fetching of all signal providers."""
import logging
from concurrent.futures import ThreadPoolExecutor, wait as wait_for

from models.alerts import utcnow
from models.signals import CycleSignals

logger = logging.getLogger("opswatch.monitor.collector")


class SignalCollector:
    def __init__(self, providers=None, timeout=10, max_workers=4):
        self.providers = list(providers or [])
        self.timeout = timeout
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="opswatch-fetch")

    def add(self, provider):
        self.providers.append(provider)

    def collect(self):
        """Fetch every provider concurrently.

        Returns ``(CycleSignals, failures)`` where failures maps source name
        to an error string. A provider that raises, times out, or returns a
        snapshot for another source is left out of the bundle; its rules get
        no outcome this cycle.
        """
        captured_at = utcnow()
        futures = {self._pool.submit(p.fetch): p for p in self.providers}
        done, pending = wait_for(futures, timeout=self.timeout)

        snapshots = {}
        failures = {}
        for future in pending:
            provider = futures[future]
            future.cancel()
            failures[provider.source] = f"timed out after {self.timeout}s"
            logger.warning(f"Provider {provider.source} timed out after {self.timeout}s")

        for future in done:
            provider = futures[future]
            try:
                snapshot = future.result()
            except Exception as e:
                failures[provider.source] = str(e)
                logger.warning(f"Provider {provider.source} failed: {e}")
                continue
            if snapshot is None or snapshot.source != provider.source:
                failures[provider.source] = "returned no snapshot for its source"
                logger.warning(f"Provider {provider.source} returned {snapshot!r}")
                continue
            snapshots[provider.source] = snapshot

        return CycleSignals(snapshots, captured_at=captured_at), failures

    def shutdown(self, wait=False):
        self._pool.shutdown(wait=wait)
