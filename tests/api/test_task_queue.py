"""Notification queue tests.

Verifies:
1. Enrollment routes publish notification facts on the queue
2. The worker handler consumes and logs them
3. A failing handler does not stop the worker
"""

from __future__ import annotations

import asyncio
import logging

import pytest
from fastapi.testclient import TestClient

from app import worker
from app.services.notifications import NOTIFICATION_QUEUE
from app.services.task_queue import task_queue
from tests.conftest import seed_course, seed_user


def test_join_waitlist_queues_update(client: TestClient) -> None:
    seed_user("alice")
    seed_user("bob")
    seed_course("c1", max_enrollment=1, enrolled=("alice",))
    client.post("/v1/courses/c1/waitlist", json={"student_id": "bob"})

    task = asyncio.run(_dequeue(NOTIFICATION_QUEUE))
    assert task is not None
    assert task.payload["type"] == "waitlist_update"
    assert task.payload["user_id"] == "bob"
    assert task.payload["data"]["waitlist_position"] == 1


def test_queue_length_reflects_published_facts(client: TestClient) -> None:
    seed_course("c1", max_enrollment=10)
    for sid in ("a", "b", "c"):
        seed_user(sid)
        client.post("/v1/courses/c1/enrollments", json={"student_id": sid})

    assert asyncio.run(_queue_length(NOTIFICATION_QUEUE)) == 3


def test_worker_handles_notification(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    seed_user("alice")
    seed_course("c1", max_enrollment=5)
    client.post("/v1/courses/c1/enrollments", json={"student_id": "alice"})

    with caplog.at_level(logging.INFO, logger="worker"):
        handled = asyncio.run(worker.process_one(NOTIFICATION_QUEUE, timeout=0))
        empty = asyncio.run(worker.process_one(NOTIFICATION_QUEUE, timeout=0))

    assert handled is True
    assert empty is False
    assert any("enrollment_confirmation" in r.getMessage() for r in caplog.records)


def test_worker_survives_failing_handler(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    async def broken(_task) -> None:
        raise RuntimeError("smtp down")

    monkeypatch.setitem(worker.HANDLERS, NOTIFICATION_QUEUE, broken)
    asyncio.run(task_queue.enqueue(NOTIFICATION_QUEUE, {"type": "course_full"}))

    with caplog.at_level(logging.ERROR, logger="worker"):
        assert asyncio.run(worker.process_one(NOTIFICATION_QUEUE, timeout=0)) is True

    assert any("failed" in r.getMessage() for r in caplog.records)


async def _dequeue(queue: str):
    return await task_queue.dequeue(queue)


async def _queue_length(queue: str):
    return await task_queue.queue_length(queue)
