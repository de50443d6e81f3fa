"""Service singletons and their FastAPI dependencies.

Backends are chosen once at import time, like the task queue:
  DATABASE_URL set -> PgCourseRepo / PgUserRepo, else in-memory repos.
  REDIS_URL set    -> RedisWaitlistStore / RedisCourseLocks, else in-process.

Routes depend on the get_* functions rather than importing the
singletons, so a test can swap a service through app.dependency_overrides.
"""

from __future__ import annotations

from app.db.engine import async_session_factory
from app.db.redis import redis_pool
from app.repos.course_repo import CourseRepo, InMemoryCourseRepo
from app.repos.pg_course_repo import PgCourseRepo
from app.repos.pg_user_repo import PgUserRepo
from app.repos.user_repo import InMemoryUserRepo, UserRepo
from app.repos.waitlist_store import (
    InMemoryWaitlistStore,
    RedisWaitlistStore,
    WaitlistStore,
)
from app.services.analytics_service import AnalyticsService
from app.services.course_locks import course_locks
from app.services.enrollment_service import EnrollmentService
from app.services.task_queue import TaskQueue, task_queue
from app.services.waitlist_service import WaitlistService

if async_session_factory is not None:
    user_repo: UserRepo = PgUserRepo(async_session_factory)
    course_repo: CourseRepo = PgCourseRepo(async_session_factory)
else:
    user_repo = InMemoryUserRepo()
    course_repo = InMemoryCourseRepo(users=user_repo)

if redis_pool is not None:
    waitlist_store: WaitlistStore = RedisWaitlistStore(redis_pool)
else:
    waitlist_store = InMemoryWaitlistStore()

enrollment_service = EnrollmentService(
    course_repo, user_repo, waitlist_store=waitlist_store, locks=course_locks
)
waitlist_service = WaitlistService(enrollment_service)
analytics_service = AnalyticsService(course_repo, waitlist_store)


def get_enrollment_service() -> EnrollmentService:
    return enrollment_service


def get_waitlist_service() -> WaitlistService:
    return waitlist_service


def get_analytics_service() -> AnalyticsService:
    return analytics_service


def get_task_queue() -> TaskQueue:
    return task_queue
