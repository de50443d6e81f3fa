from __future__ import annotations

import asyncio
import datetime
import json

import pytest

from app.models.waitlist import WaitlistEntry
from app.repos.waitlist_store import (
    InMemoryWaitlistStore,
    RedisWaitlistStore,
    WaitlistStore,
    WaitlistStoreError,
)

_T0 = datetime.datetime(2024, 5, 1, 9, 0, tzinfo=datetime.UTC)


def _entry(student_id: str, position: int) -> WaitlistEntry:
    return WaitlistEntry.new(
        course_id="c1", student_id=student_id, position=position, joined_at=_T0
    )


def test_in_memory_store_satisfies_protocol() -> None:
    assert isinstance(InMemoryWaitlistStore(), WaitlistStore)


def test_put_then_get_returns_copy() -> None:
    async def scenario():
        store = InMemoryWaitlistStore()
        await store.put("c1", [_entry("a", 1)])
        loaded = await store.get("c1")
        loaded.append(_entry("b", 2))
        return await store.get("c1")

    assert [e.student_id for e in asyncio.run(scenario())] == ["a"]


def test_empty_put_forgets_course() -> None:
    async def scenario():
        store = InMemoryWaitlistStore()
        await store.put("c1", [_entry("a", 1)])
        await store.put("c2", [_entry("b", 1)])
        await store.put("c1", [])
        return await store.course_ids(), await store.get("c1")

    course_ids, entries = asyncio.run(scenario())
    assert course_ids == ["c2"]
    assert entries == []


class _RawRedis:
    """Just enough of redis.asyncio.Redis for RedisWaitlistStore.get."""

    def __init__(self, documents: dict[str, str]) -> None:
        self.documents = documents

    async def get(self, key: str) -> str | None:
        return self.documents.get(key)


@pytest.mark.parametrize(
    "document",
    [
        "not json",
        '[{"id": "w1", "course_id": "c1"}]',
        '[{"id": "w1", "course_id": "c1", "student_id": "a", "joined_at": "yesterday", "position": 1}]',
    ],
)
def test_redis_store_rejects_corrupt_document(document: str) -> None:
    store = RedisWaitlistStore(_RawRedis({"waitlist:c1": document}))
    with pytest.raises(WaitlistStoreError):
        asyncio.run(store.get("c1"))


def test_redis_store_decodes_saved_document() -> None:
    document = json.dumps([_entry("a", 1).to_dict()])
    store = RedisWaitlistStore(_RawRedis({"waitlist:c1": document}))
    entries = asyncio.run(store.get("c1"))
    assert [(e.student_id, e.position, e.joined_at) for e in entries] == [("a", 1, _T0)]
