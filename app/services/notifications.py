"""Enrollment notification facts.

The admission services never notify anyone.  After a successful call
the HTTP layer asks this module which facts follow from the new course
state and publishes them on the "enrollment_notifications" queue.
Delivery (push, email, in-app) happens elsewhere; app.worker only logs
what it receives.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass, field
from enum import StrEnum

from app.models.course import Course
from app.models.waitlist import WaitlistEntry
from app.services.task_queue import TaskQueue

logger = logging.getLogger(__name__)

NOTIFICATION_QUEUE = "enrollment_notifications"


class NotificationType(StrEnum):
    ENROLLMENT_CONFIRMATION = "enrollment_confirmation"
    COURSE_CAPACITY_WARNING = "course_capacity_warning"
    COURSE_FULL = "course_full"
    WAITLIST_UPDATE = "waitlist_update"
    WAITLIST_PROMOTION = "waitlist_promotion"


@dataclass(frozen=True, slots=True)
class EnrollmentNotification:
    id: str
    user_id: str
    course_id: str
    type: NotificationType
    title: str
    message: str
    created_at: datetime.datetime
    data: dict = field(default_factory=dict)

    @staticmethod
    def new(
        *,
        user_id: str,
        course: Course,
        type: NotificationType,
        title: str,
        message: str,
        data: dict | None = None,
    ) -> EnrollmentNotification:
        return EnrollmentNotification(
            id=str(uuid.uuid4()),
            user_id=user_id,
            course_id=course.id,
            type=type,
            title=title,
            message=message,
            created_at=datetime.datetime.now(datetime.UTC),
            data={"course_title": course.title, **(data or {})},
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
            "data": self.data,
        }


def enrollment_confirmation(course: Course, student_id: str) -> EnrollmentNotification:
    return EnrollmentNotification.new(
        user_id=student_id,
        course=course,
        type=NotificationType.ENROLLMENT_CONFIRMATION,
        title="Enrollment Confirmed",
        message=f'You have successfully enrolled in "{course.title}".',
        data={
            "enrolled_count": course.enrolled_count,
            "max_enrollment": course.max_enrollment,
        },
    )


def capacity_warning(course: Course, student_id: str) -> EnrollmentNotification:
    return EnrollmentNotification.new(
        user_id=student_id,
        course=course,
        type=NotificationType.COURSE_CAPACITY_WARNING,
        title="Course Filling Up",
        message=(
            f'The course "{course.title}" is filling up quickly! Only '
            f"{course.available_spots} spots remaining out of {course.max_enrollment}."
        ),
        data={
            "available_spots": course.available_spots,
            "max_enrollment": course.max_enrollment,
            "enrollment_percentage": course.enrollment_percentage,
        },
    )


def course_full(course: Course, student_id: str) -> EnrollmentNotification:
    return EnrollmentNotification.new(
        user_id=student_id,
        course=course,
        type=NotificationType.COURSE_FULL,
        title="Course Full",
        message=(
            f'The course "{course.title}" is now full. You can join the waitlist '
            "to be notified if a spot becomes available."
        ),
        data={"max_enrollment": course.max_enrollment, "waitlist_available": True},
    )


def waitlist_update(course: Course, entry: WaitlistEntry) -> EnrollmentNotification:
    return EnrollmentNotification.new(
        user_id=entry.student_id,
        course=course,
        type=NotificationType.WAITLIST_UPDATE,
        title="Waitlist Update",
        message=(
            f'You are #{entry.position} on the waitlist for "{course.title}". '
            "We'll notify you if a spot becomes available."
        ),
        data={"waitlist_position": entry.position, "max_enrollment": course.max_enrollment},
    )


def waitlist_promotion(course: Course, entry: WaitlistEntry) -> EnrollmentNotification:
    return EnrollmentNotification.new(
        user_id=entry.student_id,
        course=course,
        type=NotificationType.WAITLIST_PROMOTION,
        title="You're In",
        message=f'A spot opened up and you are now enrolled in "{course.title}".',
        data={"waited_since": entry.joined_at.isoformat()},
    )


def after_enrollment(course: Course, student_id: str) -> list[EnrollmentNotification]:
    """Facts that follow from `student_id` taking a seat; `course` is the post-enroll state."""
    facts = [enrollment_confirmation(course, student_id)]
    if course.is_full:
        facts.append(course_full(course, student_id))
    elif course.is_nearly_full:
        facts.append(capacity_warning(course, student_id))
    return facts


async def publish(queue: TaskQueue, notifications: list[EnrollmentNotification]) -> None:
    for note in notifications:
        task = await queue.enqueue(NOTIFICATION_QUEUE, note.to_dict())
        logger.debug(
            "Queued %s notification for user=%s",
            note.type.value,
            note.user_id,
            extra={"course_id": note.course_id, "student_id": note.user_id, "task_id": task.id},
        )
