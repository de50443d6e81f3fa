"""Admission control: who may occupy a seat in a course.

EVERY RULE, NOT THE FIRST ONE
-----------------------------
enroll_student evaluates all eligibility rules in a fixed order and
reports every violation at once as VALIDATION_FAILED(reasons):

  course exists -> student exists -> course published -> course not full
  -> role is student -> not already enrolled -> not on the waitlist

Rules that need a missing record are skipped (no role check without a
student).  A repository *failure* (database down) is not a rule
violation; it is returned as-is and nothing else is evaluated.

THE SERVICE CHECK IS NOT THE GUARD
----------------------------------
The validation pass reads the course, then the repository writes.
Between the two another request could take the last seat.  The only
authority on capacity is CourseRepo.enroll_student, which adds the
student iff a seat is free, atomically.  Its result is returned
unchanged, so a lost race surfaces as COURSE_FULL.

On top of that every mutation runs under the per-course lock, which
keeps the cross-store rule "never both enrolled and waitlisted" honest.

TRANSFER
--------
  1. eligibility on the target; nothing is written if it fails
  2. enroll into the target
  3. unenroll from the source; on failure undo step 2

The order means a student is never left with zero seats, at the price
of a short window enrolled in both courses.  If the undo itself fails
the caller gets COMPENSATION_FAILED carrying both errors: the student
is then enrolled in both courses and someone has to look.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.core.errors import EnrollmentError, ErrorKind
from app.core.metrics import ENROLLMENT_OPERATIONS, TRANSFER_COMPENSATIONS
from app.core.result import Err, Ok, Result, err
from app.models.course import NEARLY_FULL_PERCENT, Course
from app.models.enrollment import EnrollmentInfo
from app.models.user import User
from app.repos.course_repo import CourseRepo
from app.repos.user_repo import UserRepo
from app.repos.waitlist_store import (
    InMemoryWaitlistStore,
    WaitlistStore,
    WaitlistStoreError,
)
from app.services.course_locks import CourseLockError, CourseLocks, InMemoryCourseLocks

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _ctx(course_id: str, student_id: str | None = None) -> dict[str, str]:
    extra = {"course_id": course_id}
    if student_id is not None:
        extra["student_id"] = student_id
    return extra


def _outcome(result: Result) -> str:
    return "ok" if isinstance(result, Ok) else result.error.kind.value


def _eligibility(course: Course, student_id: str) -> list[ErrorKind]:
    """Reasons the student cannot take a seat in `course` right now."""
    reasons: list[ErrorKind] = []
    if not course.is_published:
        reasons.append(ErrorKind.COURSE_UNAVAILABLE)
    if course.is_full:
        reasons.append(ErrorKind.COURSE_FULL)
    if course.is_student_enrolled(student_id):
        reasons.append(ErrorKind.ALREADY_ENROLLED)
    return reasons


class EnrollmentService:
    def __init__(
        self,
        course_repo: CourseRepo,
        user_repo: UserRepo,
        *,
        waitlist_store: WaitlistStore | None = None,
        locks: CourseLocks | None = None,
    ) -> None:
        self._courses = course_repo
        self._users = user_repo
        self._waitlists = waitlist_store or InMemoryWaitlistStore()
        self._locks = locks or InMemoryCourseLocks()

    @property
    def course_repo(self) -> CourseRepo:
        return self._courses

    @property
    def user_repo(self) -> UserRepo:
        return self._users

    @property
    def waitlist_store(self) -> WaitlistStore:
        return self._waitlists

    @property
    def locks(self) -> CourseLocks:
        return self._locks

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def enroll_student(self, course_id: str, student_id: str) -> Result[None]:
        result = await self.run_locked(
            course_id, lambda: self._admit(course_id, student_id, check_waitlist=True)
        )
        ENROLLMENT_OPERATIONS.labels(operation="enroll", outcome=_outcome(result)).inc()
        if isinstance(result, Ok):
            logger.info(
                "Enrolled student=%s course=%s",
                student_id,
                course_id,
                extra=_ctx(course_id, student_id),
            )
        else:
            logger.warning(
                "Enrollment refused student=%s course=%s: %s",
                student_id,
                course_id,
                result.error.message,
                extra=_ctx(course_id, student_id),
            )
        return result

    async def admit_from_waitlist(self, course_id: str, student_id: str) -> Result[None]:
        """Enroll a waitlisted student.  The caller must already hold the course lock.

        Same rules and atomic write as enroll_student, minus the
        "not on the waitlist" rule: the candidate is on it by definition.
        """
        result = await self._admit(course_id, student_id, check_waitlist=False)
        ENROLLMENT_OPERATIONS.labels(operation="admit", outcome=_outcome(result)).inc()
        return result

    async def unenroll_student(self, course_id: str, student_id: str) -> Result[None]:
        result = await self.run_locked(
            course_id, lambda: self._unenroll(course_id, student_id)
        )
        ENROLLMENT_OPERATIONS.labels(operation="unenroll", outcome=_outcome(result)).inc()
        if isinstance(result, Ok):
            logger.info(
                "Unenrolled student=%s course=%s",
                student_id,
                course_id,
                extra=_ctx(course_id, student_id),
            )
        return result

    async def transfer_student(
        self, from_course_id: str, to_course_id: str, student_id: str
    ) -> Result[None]:
        result = await self._transfer(from_course_id, to_course_id, student_id)
        ENROLLMENT_OPERATIONS.labels(operation="transfer", outcome=_outcome(result)).inc()
        return result

    async def _transfer(
        self, from_course_id: str, to_course_id: str, student_id: str
    ) -> Result[None]:
        target = await self._courses.get_course_by_id(to_course_id)
        if isinstance(target, Err):
            return target
        reasons = _eligibility(target.value, student_id)
        if reasons:
            logger.info(
                "Transfer refused student=%s target=%s reasons=%s",
                student_id,
                to_course_id,
                [r.value for r in reasons],
                extra=_ctx(to_course_id, student_id),
            )
            return Err(EnrollmentError.validation_failed(reasons))

        enrolled = await self.enroll_student(to_course_id, student_id)
        if isinstance(enrolled, Err):
            return enrolled

        left = await self.unenroll_student(from_course_id, student_id)
        if isinstance(left, Ok):
            logger.info(
                "Transferred student=%s from=%s to=%s",
                student_id,
                from_course_id,
                to_course_id,
                extra=_ctx(to_course_id, student_id),
            )
            return left

        undo = await self.unenroll_student(to_course_id, student_id)
        if isinstance(undo, Ok):
            TRANSFER_COMPENSATIONS.labels(outcome="rolled_back").inc()
            logger.warning(
                "Transfer rolled back student=%s from=%s to=%s: %s",
                student_id,
                from_course_id,
                to_course_id,
                left.error.message,
                extra=_ctx(from_course_id, student_id),
            )
            return left

        TRANSFER_COMPENSATIONS.labels(outcome="failed").inc()
        logger.error(
            "Transfer rollback failed; student=%s enrolled in both %s and %s",
            student_id,
            from_course_id,
            to_course_id,
            extra=_ctx(to_course_id, student_id),
        )
        return Err(EnrollmentError.compensation_failed(left.error, undo.error))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_enrollment_info(
        self, course_id: str, student_id: str | None = None
    ) -> Result[EnrollmentInfo]:
        loaded = await self._courses.get_course_by_id(course_id)
        if isinstance(loaded, Err):
            return loaded
        return Ok(EnrollmentInfo.from_course(loaded.value, student_id))

    async def can_student_enroll(self, course_id: str, student_id: str) -> bool:
        # Fail closed: an unknown or unreadable course is not enrollable.
        loaded = await self._courses.get_course_by_id(course_id)
        if isinstance(loaded, Err):
            return False
        course = loaded.value
        return course.can_accept_enrollments and not course.is_student_enrolled(student_id)

    async def get_enrolled_students(self, course_id: str) -> Result[list[User]]:
        return await self._courses.get_enrolled_students(course_id)

    async def get_enrollment_statistics(self, course_id: str) -> Result[dict]:
        loaded = await self._courses.get_course_statistics(course_id)
        if isinstance(loaded, Err):
            return loaded
        stats: dict = dict(loaded.value)
        # Judge against the exact ratio, not the rounded percentage.
        rate = stats["enrolled_count"] / stats["max_enrollment"]
        stats["is_nearly_full"] = rate * 100 > NEARLY_FULL_PERCENT
        stats["is_full"] = stats["available_spots"] <= 0
        stats["enrollment_rate"] = rate
        return Ok(stats)

    async def get_student_enrolled_courses(
        self, student_id: str, limit: int = 10
    ) -> Result[list[Course]]:
        return await self._courses.get_enrolled_courses(student_id, limit)

    async def get_bulk_enrollment_info(
        self, course_ids: list[str], student_id: str | None = None
    ) -> Result[dict[str, EnrollmentInfo]]:
        infos: dict[str, EnrollmentInfo] = {}
        for course_id in course_ids:
            info = await self.get_enrollment_info(course_id, student_id)
            if isinstance(info, Ok):
                infos[course_id] = info.value
        return Ok(infos)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def run_locked(
        self, course_id: str, action: Callable[[], Awaitable[Result[T]]]
    ) -> Result[T]:
        """Run `action` while holding the course's lock."""
        try:
            async with self._locks.hold(course_id):
                return await action()
        except CourseLockError as e:
            logger.error("Course lock unavailable: %s", e, extra=_ctx(course_id))
            return Err(EnrollmentError.repository_failure("Course lock unavailable", e))

    async def _admit(
        self, course_id: str, student_id: str, *, check_waitlist: bool
    ) -> Result[None]:
        course_res = await self._courses.get_course_by_id(course_id)
        if isinstance(course_res, Err) and course_res.error.kind is not ErrorKind.COURSE_NOT_FOUND:
            return course_res
        student_res = await self._users.get_user_by_id(student_id)
        if isinstance(student_res, Err) and student_res.error.kind is not ErrorKind.STUDENT_NOT_FOUND:
            return student_res

        course = course_res.value if isinstance(course_res, Ok) else None
        student = student_res.value if isinstance(student_res, Ok) else None

        reasons: list[ErrorKind] = []
        if course is None:
            reasons.append(ErrorKind.COURSE_NOT_FOUND)
        if student is None:
            reasons.append(ErrorKind.STUDENT_NOT_FOUND)
        if course is not None:
            if not course.is_published:
                reasons.append(ErrorKind.COURSE_UNAVAILABLE)
            if course.is_full:
                reasons.append(ErrorKind.COURSE_FULL)
        if student is not None and not student.is_student:
            reasons.append(ErrorKind.INVALID_ROLE)
        if course is not None:
            if course.is_student_enrolled(student_id):
                reasons.append(ErrorKind.ALREADY_ENROLLED)
            if check_waitlist:
                try:
                    entries = await self._waitlists.get(course_id)
                except WaitlistStoreError as e:
                    return Err(EnrollmentError.repository_failure("Failed to read waitlist", e))
                if any(e.student_id == student_id and e.is_active for e in entries):
                    reasons.append(ErrorKind.ALREADY_WAITLISTED)

        if reasons:
            return Err(EnrollmentError.validation_failed(reasons))

        return await self._courses.enroll_student(course_id, student_id)

    async def _unenroll(self, course_id: str, student_id: str) -> Result[None]:
        enrolled = await self._courses.is_student_enrolled(course_id, student_id)
        if isinstance(enrolled, Err):
            return enrolled
        if not enrolled.value:
            return err(ErrorKind.NOT_ENROLLED)
        return await self._courses.unenroll_student(course_id, student_id)
