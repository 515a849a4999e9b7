"""Tests for the monitor scheduler."""
import threading
import time

import pytest

from models.alerts import CycleResult
from monitor.scheduler import MonitorScheduler, SchedulerStopped


class BlockingCycle:
    """run_cycle stand-in that blocks until released and counts calls."""

    def __init__(self, fail=False):
        self.release = threading.Event()
        self.started = threading.Event()
        self.calls = 0
        self.concurrent = 0
        self.max_concurrent = 0
        self.fail = fail
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
            self.concurrent += 1
            self.max_concurrent = max(self.max_concurrent, self.concurrent)
        self.started.set()
        try:
            self.release.wait(5)
            if self.fail:
                raise RuntimeError("provider exploded")
            return CycleResult()
        finally:
            with self._lock:
                self.concurrent -= 1


def test_trigger_while_running_joins_in_flight_cycle():
    cycle = BlockingCycle()
    scheduler = MonitorScheduler(cycle)
    try:
        first = scheduler.trigger_now()
        assert cycle.started.wait(2)
        assert scheduler.in_flight
        second = scheduler.trigger_now()
        assert second is first

        cycle.release.set()
        assert first.result(timeout=5).ok
        assert cycle.calls == 1
        assert cycle.max_concurrent == 1
        assert not scheduler.in_flight
    finally:
        cycle.release.set()
        scheduler.stop()


def test_trigger_after_completion_starts_new_cycle():
    cycle = BlockingCycle()
    cycle.release.set()
    scheduler = MonitorScheduler(cycle)
    try:
        scheduler.trigger_now().result(timeout=5)
        scheduler.trigger_now().result(timeout=5)
        assert cycle.calls == 2
    finally:
        scheduler.stop()


def test_many_concurrent_triggers_never_overlap():
    cycle = BlockingCycle()
    scheduler = MonitorScheduler(cycle)
    futures = []
    try:
        threads = [threading.Thread(target=lambda: futures.append(scheduler.trigger_now())) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        cycle.release.set()
        for f in futures:
            f.result(timeout=5)
        assert cycle.max_concurrent == 1
        assert cycle.calls == 1
    finally:
        cycle.release.set()
        scheduler.stop()


def test_start_runs_first_cycle_immediately():
    cycle = BlockingCycle()
    cycle.release.set()
    scheduler = MonitorScheduler(cycle, interval_seconds=60, poll_seconds=0.05)
    results = []
    scheduler.on_cycle(results.append)
    scheduler.start()
    try:
        assert scheduler.running
        deadline = time.monotonic() + 3
        while not results and time.monotonic() < deadline:
            time.sleep(0.02)
        assert len(results) == 1
    finally:
        scheduler.stop()
    assert not scheduler.running


def test_interval_below_minimum_rejected():
    scheduler = MonitorScheduler(lambda: CycleResult(), interval_seconds=1, min_interval=5)
    with pytest.raises(ValueError):
        scheduler.start()
    assert not scheduler.running


def test_failed_cycle_becomes_error_result():
    cycle = BlockingCycle(fail=True)
    cycle.release.set()
    scheduler = MonitorScheduler(cycle)
    seen = []
    scheduler.on_cycle(seen.append)
    try:
        result = scheduler.trigger_now().result(timeout=5)
        assert not result.ok
        assert "provider exploded" in result.error
        assert seen == [result]
        # The scheduler keeps accepting cycles after a failure
        assert scheduler.trigger_now().result(timeout=5).error
    finally:
        scheduler.stop()


def test_callback_errors_are_contained():
    scheduler = MonitorScheduler(lambda: CycleResult())

    def bad_callback(result):
        raise ValueError("callback bug")

    scheduler.on_cycle(bad_callback)
    try:
        assert scheduler.trigger_now().result(timeout=5).ok
    finally:
        scheduler.stop()


def test_stop_returns_in_flight_future_and_does_not_interrupt():
    cycle = BlockingCycle()
    scheduler = MonitorScheduler(cycle)
    future = scheduler.trigger_now()
    assert cycle.started.wait(2)

    in_flight = scheduler.stop()
    assert in_flight is future
    assert not future.done()

    cycle.release.set()
    assert future.result(timeout=5).ok


def test_stop_when_idle_returns_none():
    scheduler = MonitorScheduler(lambda: CycleResult())
    assert scheduler.stop() is None


def test_trigger_after_stop_raises():
    scheduler = MonitorScheduler(lambda: CycleResult())
    scheduler.stop()
    with pytest.raises(SchedulerStopped):
        scheduler.trigger_now()
    with pytest.raises(SchedulerStopped):
        scheduler.start()


def test_stop_from_another_thread():
    cycle = BlockingCycle()
    cycle.release.set()
    scheduler = MonitorScheduler(cycle, interval_seconds=5, poll_seconds=0.05)
    scheduler.start()
    stopper = threading.Thread(target=scheduler.stop)
    stopper.start()
    stopper.join(5)
    assert not stopper.is_alive()
    assert not scheduler.running
