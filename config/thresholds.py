"""Runtime-tunable numeric thresholds that parameterize the built-in rules."""
import logging
import math
import numbers
import threading

logger = logging.getLogger("opswatch.config.thresholds")

DEFAULT_THRESHOLDS = {
    "error_rate_threshold": 5,            # % of log lines in the last hour
    "error_rate_critical": 10,
    "slow_api_threshold": 2000,           # ms, average over the last 5 minutes
    "slow_api_critical": 3000,
    "cancellation_spike_threshold": 10,   # failures per hour
    "cancellation_spike_critical": 20,
    "revenue_drop_threshold": 30,         # % drop hour over hour
    "revenue_drop_critical": 50,
    "revenue_min_baseline": 1000,         # previous-hour revenue needed to judge a drop
    "db_response_threshold": 1000,        # ms
    "db_response_critical": 2000,
    "log_error_burst_threshold": 10,      # error lines in 5 minutes
    "scraper_failure_threshold": 3,
    "slow_request_threshold": 5000,       # ms, single request
}


class InvalidThresholdError(ValueError):
    """Raised when an update names unknown keys or carries non-numeric or non-finite values."""

    def __init__(self, invalid_keys, reason="Invalid config keys"):
        self.invalid_keys = sorted(invalid_keys)
        super().__init__(f"{reason}: {', '.join(self.invalid_keys)}")


class ThresholdConfig:
    """Flat key -> number map, safe to read from cycles and update from the API."""

    def __init__(self, overrides=None):
        self._values = dict(DEFAULT_THRESHOLDS)
        self._lock = threading.Lock()
        if overrides:
            self.update(overrides)

    @property
    def valid_keys(self):
        return sorted(DEFAULT_THRESHOLDS)

    def get(self, key):
        with self._lock:
            return self._values[key]

    def snapshot(self):
        """Copy of the current values; a cycle reads thresholds only through this."""
        with self._lock:
            return dict(self._values)

    def update(self, changes):
        unknown = [k for k in changes if k not in DEFAULT_THRESHOLDS]
        if unknown:
            raise InvalidThresholdError(unknown)
        non_numeric = [
            k for k, v in changes.items()
            if isinstance(v, bool) or not isinstance(v, numbers.Real) or not math.isfinite(v)
        ]
        if non_numeric:
            raise InvalidThresholdError(non_numeric, reason="Non-numeric values for")

        with self._lock:
            self._values.update(changes)
            current = dict(self._values)
        logger.info(f"Alert thresholds updated: {sorted(changes)}")
        return current
