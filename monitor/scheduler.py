"""Background scheduler for periodic evaluation cycles."""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import schedule

from models.alerts import CycleResult, utcnow

logger = logging.getLogger("opswatch.scheduler")


class SchedulerStopped(RuntimeError):
    """Raised when a cycle is requested after stop()."""


class MonitorScheduler:
    """Periodic driver with a single in-flight cycle.

    Scheduled ticks and ``trigger_now`` calls share one guard: while a
    cycle runs, any new request gets the running cycle's future instead of
    starting another one.
    """

    def __init__(self, run_cycle, interval_seconds=60, min_interval=5, poll_seconds=1):
        self.run_cycle = run_cycle
        self.interval = interval_seconds
        self.min_interval = min_interval
        self.poll_seconds = poll_seconds
        self._scheduler = schedule.Scheduler()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="opswatch-cycle")
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread = None
        self._in_flight = None
        self._stopped = False
        self._callbacks = []
        self._consecutive_failures = 0

    def on_cycle(self, callback):
        """Register callback called with each CycleResult."""
        self._callbacks.append(callback)

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    @property
    def in_flight(self):
        with self._lock:
            return self._in_flight is not None and not self._in_flight.done()

    def start(self, interval_seconds=None):
        """Start background cycles. The first cycle runs immediately."""
        if interval_seconds is not None:
            self.interval = interval_seconds
        if self.interval < self.min_interval:
            raise ValueError(f"interval must be >= {self.min_interval} seconds, got {self.interval}")
        with self._lock:
            if self._stopped:
                raise SchedulerStopped("scheduler was stopped and cannot be restarted")
            if self._thread is not None:
                return

            self._scheduler.every(self.interval).seconds.do(self._tick)
            self._thread = threading.Thread(target=self._run_loop, name="opswatch-scheduler", daemon=True)
            self._thread.start()
        logger.info(f"Scheduler started (every {self.interval}s)")

    def stop(self):
        """Stop scheduling new cycles.

        Safe to call from any thread. A cycle already running is not
        interrupted; its future is returned so the caller can wait for it.
        """
        with self._lock:
            self._stopped = True
            self._scheduler.clear()
            in_flight = self._in_flight if self._in_flight and not self._in_flight.done() else None
        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        self._thread = None
        self._executor.shutdown(wait=False)
        logger.info("Scheduler stopped")
        return in_flight

    def trigger_now(self):
        """Run a cycle now, or join the one already running. Returns a Future[CycleResult]."""
        return self._submit(reason="manual")

    def _submit(self, reason):
        with self._lock:
            if self._stopped:
                raise SchedulerStopped("scheduler is stopped")
            if self._in_flight is not None and not self._in_flight.done():
                logger.debug(f"Cycle already in flight, {reason} request joins it")
                return self._in_flight
            self._in_flight = self._executor.submit(self._run_guarded, reason)
            return self._in_flight

    def _tick(self):
        try:
            self._submit(reason="scheduled")
        except SchedulerStopped:
            pass

    def _run_loop(self):
        # Do an initial cycle immediately
        self._tick()
        while not self._stop_event.is_set():
            self._scheduler.run_pending()
            self._stop_event.wait(self.poll_seconds)

    def _run_guarded(self, reason):
        started = utcnow()
        try:
            result = self.run_cycle()
            self._consecutive_failures = 0
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"{reason.capitalize()} cycle failed ({self._consecutive_failures} consecutive): {e}",
                         exc_info=True)
            if self._consecutive_failures >= 5:
                logger.critical("5+ consecutive cycle failures!")
            result = CycleResult(started_at=started, finished_at=utcnow(), error=str(e))

        for cb in self._callbacks:
            try:
                cb(result)
            except Exception as e:
                logger.warning(f"Callback error: {e}")
        return result
