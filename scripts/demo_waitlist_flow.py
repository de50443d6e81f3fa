"""Demo: fill a course, queue two students, free a seat, watch the promotion.

Run with:
    python scripts/demo_waitlist_flow.py

Uses the in-memory repositories (no DATABASE_URL / REDIS_URL) and
FastAPI's TestClient, so nothing needs to be running.
"""

from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from app.api import dependencies
from app.main import app
from app.models.course import Course, CourseStatus
from app.models.user import User
from app.services.notifications import NOTIFICATION_QUEUE
from app.services.task_queue import task_queue

COURSE_ID = "demo-course"
STUDENTS = ("ada", "grace", "linus", "barbara")


async def _seed() -> None:
    for sid in STUDENTS:
        await dependencies.user_repo.add(User.new(email=f"{sid}@example.com", name=sid, user_id=sid))
    course = Course.new(
        title="Distributed Systems",
        max_enrollment=2,
        status=CourseStatus.PUBLISHED,
        course_id=COURSE_ID,
    )
    await dependencies.course_repo.add(course)


async def _drain() -> list[str]:
    lines = []
    while (task := await task_queue.dequeue(NOTIFICATION_QUEUE)) is not None:
        lines.append(f"{task.payload['type']:<24} -> {task.payload['user_id']}")
    return lines


def main() -> None:
    asyncio.run(_seed())
    client = TestClient(app)
    base = f"/v1/courses/{COURSE_ID}"

    # ── Step 1: fill the course ─────────────────────────────────────
    for sid in ("ada", "grace"):
        r = client.post(f"{base}/enrollments", json={"student_id": sid})
        print(f"1. POST enroll {sid:<8} → {r.status_code}")

    # ── Step 2: a third student is refused ──────────────────────────
    r = client.post(f"{base}/enrollments", json={"student_id": "linus"})
    print(f"2. POST enroll linus    → {r.status_code}  {r.json()['reasons']}")

    # ── Step 3: join the waitlist instead ───────────────────────────
    for sid in ("linus", "barbara"):
        r = client.post(f"{base}/waitlist", json={"student_id": sid})
        print(f"3. POST waitlist {sid:<8} → {r.status_code}  position={r.json()['position']}")

    r = client.get(f"{base}/enrollment", params={"student_id": "barbara"})
    print(f"   GET  info barbara    → {r.json()['status']}  \"{r.json()['message']}\"")

    # ── Step 4: free a seat; the head of the queue is promoted ──────
    r = client.delete(f"{base}/enrollments/ada")
    print(f"4. DELETE enroll ada    → {r.status_code}")
    r = client.get(f"{base}/students")
    print(f"   enrolled now         → {[s['id'] for s in r.json()]}")
    r = client.get(f"{base}/waitlist")
    print(f"   waitlist now         → {[(e['student_id'], e['position']) for e in r.json()]}")

    # ── Step 5: what the worker would receive ───────────────────────
    print("5. queued notifications:")
    for line in asyncio.run(_drain()):
        print(f"   {line}")

    print("\nAll steps completed.")


if __name__ == "__main__":
    main()
