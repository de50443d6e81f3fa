"""Waitlist endpoints.

Static sub-paths (/statistics, /promote, /inactive) are registered
before /{student_id} so they are not captured as a student id.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from app.api.dependencies import (
    get_enrollment_service,
    get_task_queue,
    get_waitlist_service,
)
from app.api.enrollments import StudentIn, notify
from app.api.errors import EnrollmentApiError
from app.core.errors import EnrollmentError, ErrorKind
from app.core.result import Err, Ok
from app.models.waitlist import WaitlistEntry
from app.services import notifications
from app.services.enrollment_service import EnrollmentService
from app.services.task_queue import TaskQueue
from app.services.waitlist_service import PromotionPolicy, WaitlistService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["waitlists"])

Enrollments = Annotated[EnrollmentService, Depends(get_enrollment_service)]
Waitlists = Annotated[WaitlistService, Depends(get_waitlist_service)]
Queue = Annotated[TaskQueue, Depends(get_task_queue)]


class WaitlistEntryOut(BaseModel):
    id: str
    course_id: str
    student_id: str
    joined_at: str
    position: int
    is_active: bool


class PositionOut(BaseModel):
    course_id: str
    student_id: str
    position: int


class ClearedOut(BaseModel):
    removed: int


def _entry_out(entry: WaitlistEntry) -> WaitlistEntryOut:
    return WaitlistEntryOut(**entry.to_dict())


@router.post(
    "/v1/courses/{course_id}/waitlist",
    response_model=WaitlistEntryOut,
    status_code=status.HTTP_201_CREATED,
)
async def join_waitlist(
    course_id: str,
    payload: StudentIn,
    enrollments: Enrollments,
    waitlists: Waitlists,
    queue: Queue,
) -> WaitlistEntryOut:
    result = await waitlists.add_to_waitlist(course_id, payload.student_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)

    course = await enrollments.course_repo.get_course_by_id(course_id)
    if isinstance(course, Ok):
        await notify(queue, [notifications.waitlist_update(course.value, result.value)])
    return _entry_out(result.value)


@router.get("/v1/courses/{course_id}/waitlist", response_model=list[WaitlistEntryOut])
async def get_waitlist(course_id: str, waitlists: Waitlists) -> list[WaitlistEntryOut]:
    result = await waitlists.get_waitlist(course_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    return [_entry_out(e) for e in result.value]


@router.get("/v1/courses/{course_id}/waitlist/statistics")
async def get_waitlist_statistics(course_id: str, waitlists: Waitlists) -> dict:
    result = await waitlists.get_waitlist_statistics(course_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    return result.value


@router.post(
    "/v1/courses/{course_id}/waitlist/promote",
    response_model=WaitlistEntryOut | None,
)
async def promote_from_waitlist(
    course_id: str,
    waitlists: Waitlists,
    policy: PromotionPolicy | None = None,
) -> WaitlistEntryOut | None:
    result = await waitlists.process_waitlist_for_available_spot(course_id, policy)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    return None if result.value is None else _entry_out(result.value)


@router.delete("/v1/courses/{course_id}/waitlist/inactive", response_model=ClearedOut)
async def clear_inactive_entries(course_id: str, waitlists: Waitlists) -> ClearedOut:
    result = await waitlists.clear_inactive_entries(course_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    return ClearedOut(removed=result.value)


@router.get("/v1/courses/{course_id}/waitlist/{student_id}", response_model=PositionOut)
async def get_waitlist_position(
    course_id: str, student_id: str, waitlists: Waitlists
) -> PositionOut:
    result = await waitlists.get_waitlist_position(course_id, student_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    if result.value is None:
        raise EnrollmentApiError(EnrollmentError.of(ErrorKind.NOT_ON_WAITLIST))
    return PositionOut(course_id=course_id, student_id=student_id, position=result.value)


@router.delete(
    "/v1/courses/{course_id}/waitlist/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def leave_waitlist(course_id: str, student_id: str, waitlists: Waitlists) -> Response:
    result = await waitlists.remove_from_waitlist(course_id, student_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/v1/students/{student_id}/waitlists", response_model=list[WaitlistEntryOut])
async def get_student_waitlists(student_id: str, waitlists: Waitlists) -> list[WaitlistEntryOut]:
    result = await waitlists.get_student_waitlists(student_id)
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    return [_entry_out(e) for e in result.value]
