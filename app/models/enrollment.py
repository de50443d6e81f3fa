from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum

from app.models.course import NEARLY_FULL_PERCENT, Course


class EnrollmentStatus(StrEnum):
    ENROLLED = "enrolled"
    NOT_ENROLLED = "not_enrolled"
    WAITLISTED = "waitlisted"
    FULL = "full"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class EnrollmentInfo:
    """Read-only view of a course's enrollment state for one (optional) student.

    Computed on demand and never persisted.
    """

    course_id: str
    course_name: str
    status: EnrollmentStatus
    enrolled_count: int
    max_enrollment: int
    available_spots: int
    can_enroll: bool
    message: str
    waitlist_position: int | None = None

    @staticmethod
    def from_course(course: Course, student_id: str | None = None) -> EnrollmentInfo:
        # Priority: enrolled > unavailable > full > not enrolled.
        is_enrolled = student_id is not None and course.is_student_enrolled(student_id)

        if is_enrolled:
            status = EnrollmentStatus.ENROLLED
            message = "You are enrolled in this course"
        elif not course.is_published:
            status = EnrollmentStatus.UNAVAILABLE
            message = "Course is not available for enrollment"
        elif course.is_full:
            status = EnrollmentStatus.FULL
            message = "Course is full"
        else:
            status = EnrollmentStatus.NOT_ENROLLED
            message = "Available for enrollment"

        return EnrollmentInfo(
            course_id=course.id,
            course_name=course.title,
            status=status,
            enrolled_count=course.enrolled_count,
            max_enrollment=course.max_enrollment,
            available_spots=course.available_spots,
            can_enroll=course.can_accept_enrollments and not is_enrolled,
            message=message,
        )

    def on_waitlist(self, position: int) -> EnrollmentInfo:
        """Report an active waitlist entry; enrollment still takes precedence."""
        if self.status is EnrollmentStatus.ENROLLED:
            return self
        return replace(
            self,
            status=EnrollmentStatus.WAITLISTED,
            message=f"You are #{position} on the waitlist",
            waitlist_position=position,
            can_enroll=False,
        )

    @property
    def enrollment_percentage(self) -> float:
        return self.enrolled_count / self.max_enrollment * 100

    @property
    def is_nearly_full(self) -> bool:
        return self.enrollment_percentage > NEARLY_FULL_PERCENT
