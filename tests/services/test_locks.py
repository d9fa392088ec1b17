from __future__ import annotations

import logging
import threading
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from redis.exceptions import LockNotOwnedError

from pathway_progress.services.events import StateChangeBus, StateChanged
from pathway_progress.services.locks import InMemoryEnrollmentLocks, RedisEnrollmentLocks


def test_in_memory_lock_is_reentrant() -> None:
    locks = InMemoryEnrollmentLocks()
    eid = uuid4()
    with locks.hold(eid):
        with locks.hold(eid):
            pass


def test_in_memory_lock_serializes_same_enrollment() -> None:
    locks = InMemoryEnrollmentLocks()
    eid = uuid4()
    entered = threading.Event()

    def contender() -> None:
        with locks.hold(eid):
            entered.set()

    with locks.hold(eid):
        t = threading.Thread(target=contender)
        t.start()
        assert not entered.wait(0.1)
    t.join(timeout=1)
    assert entered.is_set()


def test_in_memory_locks_are_per_enrollment() -> None:
    locks = InMemoryEnrollmentLocks()
    entered = threading.Event()

    def other() -> None:
        with locks.hold(uuid4()):
            entered.set()

    with locks.hold(uuid4()):
        t = threading.Thread(target=other)
        t.start()
        assert entered.wait(1)
    t.join(timeout=1)


def test_in_memory_lock_entry_dropped_after_release() -> None:
    locks = InMemoryEnrollmentLocks()
    eid = uuid4()
    with locks.hold(eid):
        with locks.hold(eid):
            assert eid in locks._locks
        assert eid in locks._locks
    assert locks._locks == {}


def test_in_memory_lock_entry_survives_while_contended() -> None:
    locks = InMemoryEnrollmentLocks()
    eid = uuid4()
    waiting = threading.Event()
    entered = threading.Event()

    def contender() -> None:
        waiting.set()
        with locks.hold(eid):
            entered.set()

    with locks.hold(eid):
        t = threading.Thread(target=contender)
        t.start()
        assert waiting.wait(1)
        assert not entered.wait(0.1)
    t.join(timeout=1)
    assert entered.is_set()
    assert locks._locks == {}


def test_redis_lock_acquires_and_releases() -> None:
    client = MagicMock()
    lock = client.lock.return_value
    lock.acquire.return_value = True
    locks = RedisEnrollmentLocks(client, timeout_seconds=5)
    eid = uuid4()

    with locks.hold(eid):
        with locks.hold(eid):
            pass

    client.lock.assert_called_once_with(
        f"progress:recompute:{eid}", timeout=5, blocking_timeout=5
    )
    lock.release.assert_called_once()


def test_redis_lock_expired_before_release_is_logged(caplog) -> None:
    client = MagicMock()
    lock = client.lock.return_value
    lock.acquire.return_value = True
    lock.release.side_effect = LockNotOwnedError("lock expired")
    locks = RedisEnrollmentLocks(client, timeout_seconds=5)

    with caplog.at_level(logging.WARNING, logger="pathway_progress.services.locks"):
        with locks.hold(uuid4()):
            pass

    assert "expired before release" in caplog.text


def test_redis_lock_timeout() -> None:
    client = MagicMock()
    client.lock.return_value.acquire.return_value = False
    locks = RedisEnrollmentLocks(client)

    with pytest.raises(TimeoutError):
        with locks.hold(uuid4()):
            pass


def test_bus_delivers_in_subscription_order() -> None:
    bus = StateChangeBus()
    seen: list[str] = []
    bus.subscribe(lambda e: seen.append(f"first:{e.trigger}"))
    bus.subscribe(lambda e: seen.append(f"second:{e.trigger}"))

    bus.publish(StateChanged(uuid4(), None, "manual"))

    assert seen == ["first:manual", "second:manual"]


def test_bus_propagates_subscriber_errors() -> None:
    bus = StateChangeBus()

    def boom(_event: StateChanged) -> None:
        raise RuntimeError("recompute failed")

    bus.subscribe(boom)
    with pytest.raises(RuntimeError):
        bus.publish(StateChanged(uuid4(), None, "signal"))
