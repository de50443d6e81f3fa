"""System-wide enrollment metrics, computed on demand from the course catalog."""

from __future__ import annotations

import datetime
import logging
from collections import Counter
from dataclasses import dataclass

from app.core.errors import EnrollmentError
from app.core.result import Err, Ok, Result
from app.repos.course_repo import CourseRepo
from app.repos.waitlist_store import WaitlistStore, WaitlistStoreError

logger = logging.getLogger(__name__)

_POPULAR_COUNT = 5
_CATALOG_LIMIT = 1000


@dataclass(frozen=True, slots=True)
class SystemEnrollmentMetrics:
    total_courses: int
    total_students: int  # distinct students holding at least one seat
    total_enrollments: int
    total_waitlisted: int
    average_enrollment_rate: float
    courses_by_status: dict[str, int]
    most_popular_course_ids: list[str]
    least_popular_course_ids: list[str]
    generated_at: datetime.datetime


class AnalyticsService:
    def __init__(self, course_repo: CourseRepo, waitlist_store: WaitlistStore) -> None:
        self._courses = course_repo
        self._waitlists = waitlist_store

    async def generate_system_metrics(self) -> Result[SystemEnrollmentMetrics]:
        loaded = await self._courses.get_courses(_CATALOG_LIMIT)
        if isinstance(loaded, Err):
            return loaded
        courses = loaded.value

        try:
            waitlisted = 0
            for course_id in await self._waitlists.course_ids():
                waitlisted += sum(1 for e in await self._waitlists.get(course_id) if e.is_active)
        except WaitlistStoreError as e:
            return Err(EnrollmentError.repository_failure("Failed to read waitlists", e))

        students = {sid for c in courses for sid in c.enrolled_student_ids}
        by_popularity = sorted(courses, key=lambda c: c.enrolled_count, reverse=True)

        metrics = SystemEnrollmentMetrics(
            total_courses=len(courses),
            total_students=len(students),
            total_enrollments=sum(c.enrolled_count for c in courses),
            total_waitlisted=waitlisted,
            average_enrollment_rate=(
                sum(c.enrollment_percentage for c in courses) / len(courses) if courses else 0.0
            ),
            courses_by_status=dict(Counter(c.status.value for c in courses)),
            most_popular_course_ids=[c.id for c in by_popularity[:_POPULAR_COUNT]],
            least_popular_course_ids=[c.id for c in by_popularity[::-1][:_POPULAR_COUNT]],
            generated_at=datetime.datetime.now(datetime.UTC),
        )
        logger.info(
            "Generated system metrics courses=%d enrollments=%d",
            metrics.total_courses,
            metrics.total_enrollments,
        )
        return Ok(metrics)
