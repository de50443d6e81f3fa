"""Waitlist persistence: course_id -> ordered list of WaitlistEntry.

The WaitlistService owns the queue rules (positions, activity,
renumbering).  A store only loads and saves a course's whole list, so
every read-modify-write runs under the per-course lock held by the
service.

Two implementations, chosen the same way as the task queue:
  - InMemoryWaitlistStore: per-process dict; tests and local dev.
  - RedisWaitlistStore: one JSON document per course under
    "waitlist:{course_id}", shared by every API instance and the worker.
"""

from __future__ import annotations

import json
import logging
from typing import Protocol, runtime_checkable

from redis.exceptions import RedisError

from app.models.waitlist import WaitlistEntry

logger = logging.getLogger(__name__)


class WaitlistStoreError(Exception):
    """The backing store could not be read or written."""


@runtime_checkable
class WaitlistStore(Protocol):
    async def get(self, course_id: str) -> list[WaitlistEntry]:
        """All entries (active and inactive) for the course, in stored order."""
        ...

    async def put(self, course_id: str, entries: list[WaitlistEntry]) -> None:
        """Replace the course's entries."""
        ...

    async def course_ids(self) -> list[str]:
        """Every course that currently has stored entries."""
        ...


class InMemoryWaitlistStore:
    def __init__(self) -> None:
        self._entries: dict[str, list[WaitlistEntry]] = {}

    async def get(self, course_id: str) -> list[WaitlistEntry]:
        return list(self._entries.get(course_id, ()))

    async def put(self, course_id: str, entries: list[WaitlistEntry]) -> None:
        if entries:
            self._entries[course_id] = list(entries)
        else:
            self._entries.pop(course_id, None)

    async def course_ids(self) -> list[str]:
        return list(self._entries)


class RedisWaitlistStore:
    _PREFIX = "waitlist:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, course_id: str) -> list[WaitlistEntry]:
        try:
            raw = await self._redis.get(f"{self._PREFIX}{course_id}")
        except RedisError as e:
            logger.exception("Waitlist read failed course_id=%s", course_id)
            raise WaitlistStoreError(f"Failed to read waitlist: {e}") from e
        if raw is None:
            return []
        try:
            return [WaitlistEntry.from_dict(d) for d in json.loads(raw)]
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Corrupt waitlist document course_id=%s: %s", course_id, e)
            raise WaitlistStoreError(f"Corrupt waitlist for course {course_id}: {e!r}") from e

    async def put(self, course_id: str, entries: list[WaitlistEntry]) -> None:
        key = f"{self._PREFIX}{course_id}"
        try:
            if entries:
                await self._redis.set(key, json.dumps([e.to_dict() for e in entries]))
            else:
                await self._redis.delete(key)
        except RedisError as e:
            logger.exception("Waitlist write failed course_id=%s", course_id)
            raise WaitlistStoreError(f"Failed to write waitlist: {e}") from e

    async def course_ids(self) -> list[str]:
        try:
            keys = [k async for k in self._redis.scan_iter(match=f"{self._PREFIX}*")]
        except RedisError as e:
            logger.exception("Waitlist scan failed")
            raise WaitlistStoreError(f"Failed to list waitlists: {e}") from e
        return [k.removeprefix(self._PREFIX) for k in keys]
