"""Enrollment endpoints.

Routes are thin: call the service, turn an Err into EnrollmentApiError,
and afterwards do the orchestration the services leave to their caller:

  - publish notification facts for the new state
  - after a seat is released (unenroll, transfer out), promote the head
    of that course's waitlist

No authentication: the student id is an explicit parameter.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel
from redis.exceptions import RedisError

from app.api.dependencies import (
    get_enrollment_service,
    get_task_queue,
    get_waitlist_service,
)
from app.api.errors import EnrollmentApiError
from app.core.result import Err, Ok
from app.models.course import Course
from app.models.enrollment import EnrollmentInfo
from app.services import notifications
from app.services.enrollment_service import EnrollmentService
from app.services.task_queue import TaskQueue
from app.services.waitlist_service import WaitlistService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["enrollments"])

Enrollments = Annotated[EnrollmentService, Depends(get_enrollment_service)]
Waitlists = Annotated[WaitlistService, Depends(get_waitlist_service)]
Queue = Annotated[TaskQueue, Depends(get_task_queue)]


class StudentIn(BaseModel):
    student_id: str


class TransferIn(BaseModel):
    from_course_id: str
    to_course_id: str
    student_id: str


class BulkInfoIn(BaseModel):
    course_ids: list[str]
    student_id: str | None = None


class EnrollmentOut(BaseModel):
    course_id: str
    student_id: str
    status: str


class EnrollmentInfoOut(BaseModel):
    course_id: str
    course_name: str
    status: str
    enrolled_count: int
    max_enrollment: int
    available_spots: int
    can_enroll: bool
    message: str
    enrollment_percentage: float
    is_nearly_full: bool
    waitlist_position: int | None = None


class StudentOut(BaseModel):
    id: str
    email: str
    name: str
    role: str


class CourseOut(BaseModel):
    id: str
    title: str
    status: str
    max_enrollment: int
    enrolled_count: int
    available_spots: int


def _info_out(info: EnrollmentInfo) -> EnrollmentInfoOut:
    return EnrollmentInfoOut(
        course_id=info.course_id,
        course_name=info.course_name,
        status=info.status.value,
        enrolled_count=info.enrolled_count,
        max_enrollment=info.max_enrollment,
        available_spots=info.available_spots,
        can_enroll=info.can_enroll,
        message=info.message,
        enrollment_percentage=info.enrollment_percentage,
        is_nearly_full=info.is_nearly_full,
        waitlist_position=info.waitlist_position,
    )


def _course_out(course: Course) -> CourseOut:
    return CourseOut(
        id=course.id,
        title=course.title,
        status=course.status.value,
        max_enrollment=course.max_enrollment,
        enrolled_count=course.enrolled_count,
        available_spots=course.available_spots,
    )


async def notify(queue: TaskQueue, facts: list[notifications.EnrollmentNotification]) -> None:
    # The enrollment change is already committed; a lost fact is only logged.
    try:
        await notifications.publish(queue, facts)
    except RedisError:
        logger.exception("Failed to queue %d enrollment notifications", len(facts))


async def promote_next(
    course_id: str,
    enrollments: EnrollmentService,
    waitlists: WaitlistService,
    queue: TaskQueue,
) -> None:
    """Fill a just-released seat from the course's waitlist, if anyone is waiting."""
    promoted = await waitlists.process_waitlist_for_available_spot(course_id)
    if isinstance(promoted, Err):
        logger.warning(
            "Waitlist promotion failed course=%s: %s",
            course_id,
            promoted.error.message,
            extra={"course_id": course_id},
        )
        return
    entry = promoted.value
    if entry is None:
        return

    course = await enrollments.course_repo.get_course_by_id(course_id)
    remaining = await waitlists.get_waitlist(course_id)
    if isinstance(course, Err) or isinstance(remaining, Err):
        return
    facts = [notifications.waitlist_promotion(course.value, entry)]
    facts += [notifications.waitlist_update(course.value, e) for e in remaining.value]
    await notify(queue, facts)


@router.get("/v1/courses/{course_id}/enrollment", response_model=EnrollmentInfoOut)
async def get_enrollment_info(
    course_id: str,
    enrollments: Enrollments,
    waitlists: Waitlists,
    student_id: str | None = None,
) -> EnrollmentInfoOut:
    result = await enrollments.get_enrollment_info(course_id, student_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    info = result.value
    if student_id is not None:
        position = await waitlists.get_waitlist_position(course_id, student_id)
        if isinstance(position, Ok) and position.value is not None:
            info = info.on_waitlist(position.value)
    return _info_out(info)


@router.post(
    "/v1/courses/{course_id}/enrollments",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_student(
    course_id: str,
    payload: StudentIn,
    enrollments: Enrollments,
    queue: Queue,
) -> EnrollmentOut:
    result = await enrollments.enroll_student(course_id, payload.student_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)

    course = await enrollments.course_repo.get_course_by_id(course_id)
    if isinstance(course, Ok):
        await notify(queue, notifications.after_enrollment(course.value, payload.student_id))
    return EnrollmentOut(course_id=course_id, student_id=payload.student_id, status="enrolled")


@router.delete(
    "/v1/courses/{course_id}/enrollments/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def unenroll_student(
    course_id: str,
    student_id: str,
    enrollments: Enrollments,
    waitlists: Waitlists,
    queue: Queue,
) -> Response:
    result = await enrollments.unenroll_student(course_id, student_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    await promote_next(course_id, enrollments, waitlists, queue)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/v1/courses/{course_id}/students", response_model=list[StudentOut])
async def get_enrolled_students(course_id: str, enrollments: Enrollments) -> list[StudentOut]:
    result = await enrollments.get_enrolled_students(course_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    return [
        StudentOut(id=u.id, email=u.email, name=u.name, role=u.role.value)
        for u in result.value
    ]


@router.get("/v1/courses/{course_id}/statistics")
async def get_enrollment_statistics(course_id: str, enrollments: Enrollments) -> dict:
    result = await enrollments.get_enrollment_statistics(course_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    return result.value


@router.get("/v1/students/{student_id}/courses", response_model=list[CourseOut])
async def get_student_courses(
    student_id: str,
    enrollments: Enrollments,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> list[CourseOut]:
    result = await enrollments.get_student_enrolled_courses(student_id, limit)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    return [_course_out(c) for c in result.value]


@router.post("/v1/enrollment-info/bulk", response_model=dict[str, EnrollmentInfoOut])
async def get_bulk_enrollment_info(
    payload: BulkInfoIn, enrollments: Enrollments
) -> dict[str, EnrollmentInfoOut]:
    result = await enrollments.get_bulk_enrollment_info(payload.course_ids, payload.student_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    return {course_id: _info_out(info) for course_id, info in result.value.items()}


@router.post("/v1/transfers", status_code=status.HTTP_204_NO_CONTENT)
async def transfer_student(
    payload: TransferIn,
    enrollments: Enrollments,
    waitlists: Waitlists,
    queue: Queue,
) -> Response:
    result = await enrollments.transfer_student(
        payload.from_course_id, payload.to_course_id, payload.student_id
    )
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)

    target = await enrollments.course_repo.get_course_by_id(payload.to_course_id)
    if isinstance(target, Ok):
        await notify(queue, [notifications.enrollment_confirmation(target.value, payload.student_id)])
    await promote_next(payload.from_course_id, enrollments, waitlists, queue)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
