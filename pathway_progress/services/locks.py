"""Per-enrollment critical section for recomputation.

Two events for the same enrollment may race; recomputation must not
read a state snapshot torn between two writers.  Enrollments are
independent, so each one gets its own lock and nothing is held across
enrollments.

  InMemoryEnrollmentLocks: one re-entrant lock per enrollment, single process.
  RedisEnrollmentLocks:    redis-py Lock, shared by every API process.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Protocol
from uuid import UUID

from redis.exceptions import LockNotOwnedError

logger = logging.getLogger(__name__)

_LOCK_PREFIX = "progress:recompute:"


class EnrollmentLocks(Protocol):
    def hold(self, enrollment_id: UUID) -> AbstractContextManager[None]: ...


class InMemoryEnrollmentLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        # enrollment -> (lock, holders + waiters); dropped when the count hits 0
        self._locks: dict[UUID, tuple[threading.RLock, int]] = {}

    def _acquire_entry(self, enrollment_id: UUID) -> threading.RLock:
        with self._guard:
            lock, users = self._locks.get(enrollment_id, (None, 0))
            if lock is None:
                # Re-entrant: a subscriber may publish again for the same enrollment
                lock = threading.RLock()
            self._locks[enrollment_id] = (lock, users + 1)
            return lock

    def _release_entry(self, enrollment_id: UUID) -> None:
        with self._guard:
            lock, users = self._locks[enrollment_id]
            if users == 1:
                del self._locks[enrollment_id]
            else:
                self._locks[enrollment_id] = (lock, users - 1)

    @contextmanager
    def hold(self, enrollment_id: UUID) -> Iterator[None]:
        lock = self._acquire_entry(enrollment_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(enrollment_id)


class RedisEnrollmentLocks:
    """Distributed lock backed by redis-py's Lock (SET NX PX + Lua release)."""

    def __init__(self, redis_client, timeout_seconds: int = 10) -> None:
        self._redis = redis_client
        self._timeout = timeout_seconds
        self._local = threading.local()

    @contextmanager
    def hold(self, enrollment_id: UUID) -> Iterator[None]:
        held: set[UUID] = getattr(self._local, "held", None) or set()
        self._local.held = held
        if enrollment_id in held:
            # Already inside this enrollment's critical section on this thread
            yield
            return

        lock = self._redis.lock(
            f"{_LOCK_PREFIX}{enrollment_id}",
            timeout=self._timeout,
            blocking_timeout=self._timeout,
        )
        if not lock.acquire():
            raise TimeoutError(
                f"could not acquire recompute lock for enrollment {enrollment_id}"
            )
        held.add(enrollment_id)
        try:
            yield
        finally:
            held.discard(enrollment_id)
            try:
                lock.release()
            except LockNotOwnedError:
                # The key expired mid-section; another process may already hold it
                logger.warning(
                    "Recompute lock expired before release (timeout=%ss)",
                    self._timeout,
                    extra={"enrollment_id": str(enrollment_id)},
                )
