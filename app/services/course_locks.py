"""Per-course serialization for every operation that mutates a course.

WHY A LOCK ON TOP OF THE ATOMIC REPOSITORY WRITE
-------------------------------------------------
The repository's enroll primitive already guarantees the capacity bound.
What it cannot protect is state that spans two stores: the waitlist
renumbering rewrites every entry for a course, and "not enrolled AND not
waitlisted" is checked against the course repo and the waitlist store
separately.  Holding one lock per course id while doing those
read-modify-write sequences makes them single-writer.

Different courses never contend: the lock key is the course id.

Locks are never nested.  A transfer touches two courses and takes them
one after the other, so two opposite transfers cannot deadlock.

Two implementations, selected the same way as the task queue:
  - InMemoryCourseLocks: one asyncio.Lock per course id.  Correct for a
    single process (tests, local dev).
  - RedisCourseLocks: redis-py's distributed lock under
    "lock:course:{id}", shared by every API instance and the worker.
    The lease (timeout) bounds how long a crashed holder can block a
    course; blocking_timeout bounds how long a caller waits.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

from redis.exceptions import LockError, RedisError

from app.core.config import SETTINGS
from app.db.redis import redis_pool

logger = logging.getLogger(__name__)


class CourseLockError(Exception):
    """The course lock could not be acquired."""


class CourseLocks(Protocol):
    def hold(self, course_id: str) -> AbstractAsyncContextManager[None]: ...


class InMemoryCourseLocks:
    """One asyncio.Lock per course id, dropped once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, course_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(course_id, asyncio.Lock())
        self._users[course_id] = self._users.get(course_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[course_id] -= 1
            if not self._users[course_id]:
                del self._users[course_id]
                del self._locks[course_id]

    def clear(self) -> None:
        """Forget all locks (they bind to the event loop that first waits on them)."""
        self._locks.clear()
        self._users.clear()


class RedisCourseLocks:
    _PREFIX = "lock:course:"

    def __init__(self, redis_client, timeout: float) -> None:
        self._redis = redis_client
        self._timeout = timeout

    @asynccontextmanager
    async def hold(self, course_id: str) -> AsyncIterator[None]:
        lock = self._redis.lock(
            f"{self._PREFIX}{course_id}",
            timeout=self._timeout,
            blocking_timeout=self._timeout,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            raise CourseLockError(f"Failed to acquire lock for course {course_id}: {e}") from e
        if not acquired:
            raise CourseLockError(f"Timed out waiting for lock on course {course_id}")

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Lease expired while we held it; another holder may already own it.
                logger.warning(
                    "Course lock lease expired before release",
                    extra={"course_id": course_id},
                )


if redis_pool is not None:
    course_locks: CourseLocks = RedisCourseLocks(redis_pool, SETTINGS.course_lock_timeout)
else:
    course_locks = InMemoryCourseLocks()
