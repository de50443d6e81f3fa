from __future__ import annotations

import asyncio
import sys
from dataclasses import replace
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app.api import dependencies
from app.main import app
from app.models.course import Course, CourseStatus
from app.models.user import User, UserRole
from app.services.course_locks import InMemoryCourseLocks, course_locks
from app.services.task_queue import task_queue

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Empty the in-memory course, user and waitlist stores between tests."""
    dependencies.course_repo._courses.clear()  # type: ignore[union-attr]
    dependencies.user_repo._by_id.clear()  # type: ignore[union-attr]
    dependencies.user_repo._emails.clear()  # type: ignore[union-attr]
    dependencies.waitlist_store._entries.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_course_locks() -> None:
    """asyncio locks bind to the loop that first waits on them; each test has its own loop."""
    if isinstance(course_locks, InMemoryCourseLocks):
        course_locks.clear()


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


# ---------------------------------------------------------------------------
# Seed helpers (write straight into the app's in-memory repositories)
# ---------------------------------------------------------------------------


def seed_user(user_id: str, role: UserRole = UserRole.STUDENT) -> User:
    user = User.new(email=f"{user_id}@example.com", name=user_id, role=role, user_id=user_id)
    asyncio.run(dependencies.user_repo.add(user))
    return user


def seed_course(
    course_id: str,
    max_enrollment: int = 2,
    *,
    status: CourseStatus = CourseStatus.PUBLISHED,
    enrolled: tuple[str, ...] = (),
) -> Course:
    course = replace(
        Course.new(
            title=f"Course {course_id}",
            max_enrollment=max_enrollment,
            status=status,
            course_id=course_id,
        ),
        enrolled_student_ids=enrolled,
    )
    asyncio.run(dependencies.course_repo.add(course))
    return course
