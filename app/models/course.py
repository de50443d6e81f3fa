from __future__ import annotations

import datetime
from dataclasses import dataclass, replace
from enum import StrEnum
from uuid import uuid4

NEARLY_FULL_PERCENT = 80.0


class CourseStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    SUSPENDED = "suspended"
    ARCHIVED = "archived"


@dataclass(frozen=True, slots=True)
class Course:
    """A course and its enrolled-student set.

    `enrolled_student_ids` keeps enrollment order; membership is unique.
    The capacity invariant (len(enrolled_student_ids) <= max_enrollment)
    is enforced by the repositories' enroll primitive, not here.
    """

    id: str
    title: str
    max_enrollment: int
    created_at: datetime.datetime
    enrolled_student_ids: tuple[str, ...] = ()  # immutable
    status: CourseStatus = CourseStatus.DRAFT

    @staticmethod
    def new(
        *,
        title: str,
        max_enrollment: int = 50,
        status: CourseStatus = CourseStatus.DRAFT,
        course_id: str | None = None,
        created_at: datetime.datetime | None = None,
    ) -> Course:
        if max_enrollment <= 0:
            raise ValueError("max_enrollment must be greater than 0")
        return Course(
            id=course_id or str(uuid4()),
            title=title,
            max_enrollment=max_enrollment,
            created_at=created_at or datetime.datetime.now(datetime.UTC),
            status=status,
        )

    @property
    def enrolled_count(self) -> int:
        return len(self.enrolled_student_ids)

    @property
    def available_spots(self) -> int:
        return self.max_enrollment - self.enrolled_count

    @property
    def is_full(self) -> bool:
        return self.available_spots <= 0

    @property
    def has_available_spots(self) -> bool:
        return self.enrolled_count < self.max_enrollment

    @property
    def enrollment_percentage(self) -> float:
        return self.enrolled_count / self.max_enrollment * 100

    @property
    def is_nearly_full(self) -> bool:
        return self.enrollment_percentage > NEARLY_FULL_PERCENT

    @property
    def is_published(self) -> bool:
        return self.status is CourseStatus.PUBLISHED

    @property
    def can_accept_enrollments(self) -> bool:
        return self.is_published and not self.is_full

    def is_student_enrolled(self, student_id: str) -> bool:
        return student_id in self.enrolled_student_ids

    def with_student(self, student_id: str) -> Course:
        return replace(
            self, enrolled_student_ids=(*self.enrolled_student_ids, student_id)
        )

    def without_student(self, student_id: str) -> Course:
        return replace(
            self,
            enrolled_student_ids=tuple(
                s for s in self.enrolled_student_ids if s != student_id
            ),
        )
