"""Background worker process.

RUN:  python -m app.worker

The API publishes enrollment notification facts (confirmation,
"course filling up", waitlist position changes, promotion) onto the
"enrollment_notifications" queue and returns.  This process pops them
and hands each to the handler registered for its queue.

Same image, different command:
  api:    uvicorn app.main:app --host 0.0.0.0 --port 8000
  worker: python -m app.worker

Delivery (email, push, in-app) is not implemented; the handler logs
the fact with its task id so it can be correlated with the request
that produced it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.services.notifications import NOTIFICATION_QUEUE
from app.services.task_queue import Task, task_queue

TaskHandler = Callable[[Task], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(NOTIFICATION_QUEUE)
async def handle_enrollment_notification(task: Task) -> None:
    payload = task.payload
    logger.info(
        "Notification %s for user=%s: %s",
        payload.get("type"),
        payload.get("user_id"),
        payload.get("message"),
        extra={
            "task_id": task.id,
            "course_id": payload.get("course_id"),
            "student_id": payload.get("user_id"),
        },
    )


async def process_one(queue_name: str, timeout: int = 1) -> bool:
    """Pop and handle one task from `queue_name`; False if the queue was empty.

    A failing handler is logged and the task dropped (at-most-once).
    """
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False

    try:
        await HANDLERS[queue_name](task)
        logger.info("Task %s on [%s] completed", task.id, queue_name, extra={"task_id": task.id})
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, queue_name, extra={"task_id": task.id})
    return True


async def run_worker() -> None:
    """Poll all registered queues round-robin, forever."""
    queues = list(HANDLERS.keys())
    logger.info("Worker started, listening on queues: %s", queues)

    while True:
        idle = True
        for queue_name in queues:
            if await process_one(queue_name):
                idle = False
        if idle:
            # The in-memory queue returns immediately instead of blocking.
            await asyncio.sleep(0.5)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
