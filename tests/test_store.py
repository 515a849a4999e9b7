"""Tests for the alert lifecycle store and its suppression policy."""
import threading

import pytest

from conftest import fired, cleared
from alerts.store import AlertLifecycleStore
from alerts.suppression import SuppressionPolicy
from models.enums import Severity, AlertStatus, TransitionKind


@pytest.fixture
def store(clock):
    return AlertLifecycleStore(history_size=50, clock=clock)


# ── Creation and suppression ────────────────────────────

def test_first_firing_creates_and_notifies(store):
    t = store.apply(fired())
    assert t.kind == TransitionKind.CREATED
    assert t.notify is True
    assert t.alert.type == "error_rate"
    assert t.alert.id.startswith("error_rate-")
    assert t.alert.occurrence_count == 1
    assert len(store.get_active()) == 1


def test_same_severity_is_suppressed(store, clock):
    first = store.apply(fired()).alert
    transitions = []
    for i in range(9):
        clock.advance(minutes=1)
        transitions.append(store.apply(fired(message=f"still bad {i}")))

    assert all(t.kind == TransitionKind.CONFIRMED for t in transitions)
    assert not any(t.notify for t in transitions)

    active = store.get_active()
    assert len(active) == 1
    alert = active[0]
    assert alert.id == first.id
    assert alert.occurrence_count == 10
    assert alert.message == "still bad 8"
    assert alert.last_seen_at == clock.now

    created = [e for e in store.get_history() if e.transition == TransitionKind.CREATED]
    assert len(created) == 1
    assert len(store.get_history()) == 1


def test_at_most_one_active_per_type(store):
    store.apply(fired("error_rate"))
    store.apply(fired("error_rate", severity=Severity.CRITICAL))
    store.apply(fired("slow_api"))
    types = [a.type for a in store.get_active()]
    assert sorted(types) == ["error_rate", "slow_api"]


def test_escalation_notifies_and_keeps_identity(store, clock):
    created = store.apply(fired()).alert
    clock.advance(minutes=5)
    t = store.apply(fired(severity=Severity.CRITICAL))

    assert t.kind == TransitionKind.SEVERITY_CHANGED
    assert t.notify is True
    assert t.previous_severity == Severity.WARNING
    assert t.alert.id == created.id
    assert t.alert.created_at == created.created_at
    assert t.alert.severity == Severity.CRITICAL
    assert t.alert.occurrence_count == 2


def test_deescalation_also_notifies(store):
    store.apply(fired(severity=Severity.CRITICAL))
    t = store.apply(fired(severity=Severity.WARNING))
    assert t.kind == TransitionKind.SEVERITY_CHANGED
    assert t.notify is True


# ── Resolution ──────────────────────────────────────────

def test_cleared_resolves_and_records(store, clock):
    store.apply(fired())
    clock.advance(minutes=3)
    t = store.apply(cleared())

    assert t.kind == TransitionKind.RESOLVED
    assert t.notify is True
    assert t.alert.status.value == "resolved"
    assert t.alert.resolved_at == clock.now
    assert store.get_active() == []
    assert store.get_history(limit=1)[0].transition == TransitionKind.RESOLVED


def test_cleared_without_active_is_noop(store):
    t = store.apply(cleared())
    assert t.kind == TransitionKind.NOOP
    assert t.alert is None
    assert store.get_history() == []


def test_resolve_notification_can_be_disabled(clock):
    store = AlertLifecycleStore(policy=SuppressionPolicy(notify_on_resolve=False), clock=clock)
    store.apply(fired())
    t = store.apply(cleared())
    assert t.kind == TransitionKind.RESOLVED
    assert t.notify is False


def test_refire_after_resolve_creates_new_alert(store):
    first = store.apply(fired()).alert
    store.apply(cleared())
    second = store.apply(fired())
    assert second.kind == TransitionKind.CREATED
    assert second.alert.id != first.id


def test_manual_resolve_by_type(store):
    store.apply(fired("slow_api"))
    t = store.resolve_by_type("slow_api")
    assert t.kind == TransitionKind.RESOLVED
    assert store.get_active() == []
    assert store.resolve_by_type("slow_api") is None


# ── Acknowledge ─────────────────────────────────────────

def test_acknowledge_does_not_resolve(store, clock):
    alert = store.apply(fired()).alert
    clock.advance(seconds=30)
    t = store.acknowledge(alert.id)

    assert t.kind == TransitionKind.ACKNOWLEDGED
    active = store.get_active()
    assert len(active) == 1
    assert active[0].acknowledged is True
    assert active[0].acknowledged_at == clock.now

    # A later firing keeps the acknowledgement
    store.apply(fired())
    assert store.get_active()[0].acknowledged is True

    # and a cleared outcome still resolves it normally
    t = store.apply(cleared())
    assert t.kind == TransitionKind.RESOLVED
    assert store.get_active() == []
    resolved = store.get_history(limit=1)[0]
    assert resolved.transition == TransitionKind.RESOLVED
    assert resolved.alert.acknowledged is True
    assert resolved.alert.status == AlertStatus.RESOLVED


def test_acknowledge_twice_is_noop(store):
    alert = store.apply(fired()).alert
    store.acknowledge(alert.id)
    t = store.acknowledge(alert.id)
    assert t.kind == TransitionKind.NOOP
    assert len([e for e in store.get_history() if e.transition == TransitionKind.ACKNOWLEDGED]) == 1


def test_acknowledge_unknown_returns_none(store):
    assert store.acknowledge("nope-123") is None
    assert store.get("nope-123") is None


# ── History ─────────────────────────────────────────────

def test_history_is_bounded_fifo(clock):
    store = AlertLifecycleStore(history_size=10, clock=clock)
    for i in range(15):
        clock.advance(seconds=1)
        store.apply(fired(f"rule_{i}"))

    history = store.get_history(limit=100)
    assert len(history) == 10
    # newest first; the five oldest were evicted
    assert history[0].alert.type == "rule_14"
    assert history[-1].alert.type == "rule_5"


def test_history_limit(store):
    for i in range(5):
        store.apply(fired(f"rule_{i}"))
    assert len(store.get_history(limit=2)) == 2


# ── Copy-on-read ────────────────────────────────────────

def test_readers_get_copies(store):
    store.apply(fired())
    alert = store.get_active()[0]
    alert.message = "tampered"
    alert.metadata["x"] = 1
    assert store.get_active()[0].message == "boom"
    assert "x" not in store.get_active()[0].metadata


def test_active_sorted_by_severity_then_recency(store, clock):
    store.apply(fired("a", severity=Severity.WARNING))
    clock.advance(seconds=1)
    store.apply(fired("b", severity=Severity.CRITICAL))
    clock.advance(seconds=1)
    store.apply(fired("c", severity=Severity.WARNING))
    assert [a.type for a in store.get_active()] == ["b", "c", "a"]


def test_concurrent_applies_keep_one_alert(store):
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        for _ in range(25):
            store.apply(fired())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    active = store.get_active()
    assert len(active) == 1
    assert active[0].occurrence_count == 200
    assert len(store.get_history()) == 1
