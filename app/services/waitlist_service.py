"""Per-course FIFO waitlist and promotion into freed seats.

A student can only join the waitlist of a course that is full; joining
a course with a free seat is COURSE_NOT_FULL (enroll instead).  Active
entries always hold positions 1..N in joined_at order: every removal
or deactivation renumbers the rest.

PROMOTION
---------
process_waitlist_for_available_spot admits the head of the queue
through EnrollmentService.admit_from_waitlist, under the same course
lock the enrollment service uses for its own writes.  The lock is taken
here, once; admit_from_waitlist does not lock again.

What happens when the head cannot be admitted is a policy decision:

  STOP_ON_FIRST_FAILURE      return the error, leave the queue as is.
  ADVANCE_TO_NEXT_CANDIDATE  if the failure is about the candidate
                             (unknown student, wrong role, already
                             enrolled), deactivate that entry and try
                             the next one.  Course-level failures (full,
                             unpublished, storage errors) still stop.

The default comes from WAITLIST_POLICY; callers may pass one explicitly.
"""

from __future__ import annotations

import datetime
import logging
from collections import Counter
from collections.abc import Callable
from dataclasses import replace
from enum import StrEnum

from app.core.config import SETTINGS
from app.core.errors import EnrollmentError, ErrorKind
from app.core.metrics import WAITLIST_PROMOTIONS
from app.core.result import Err, Ok, Result, err
from app.models.waitlist import WaitlistEntry
from app.repos.waitlist_store import WaitlistStoreError
from app.services.enrollment_service import EnrollmentService

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


class PromotionPolicy(StrEnum):
    STOP_ON_FIRST_FAILURE = "stop_on_first_failure"
    ADVANCE_TO_NEXT_CANDIDATE = "advance_to_next_candidate"


# Failures that say nothing about the course, only about who is at the head.
_CANDIDATE_FAULTS = frozenset(
    {ErrorKind.STUDENT_NOT_FOUND, ErrorKind.INVALID_ROLE, ErrorKind.ALREADY_ENROLLED}
)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _is_candidate_fault(error: EnrollmentError) -> bool:
    reasons = error.reasons if error.kind is ErrorKind.VALIDATION_FAILED else (error.kind,)
    return bool(reasons) and all(r in _CANDIDATE_FAULTS for r in reasons)


def _active(entries: list[WaitlistEntry]) -> list[WaitlistEntry]:
    return sorted((e for e in entries if e.is_active), key=lambda e: e.position)


def _renumbered(entries: list[WaitlistEntry]) -> list[WaitlistEntry]:
    """Reassign active positions 1..N by joined_at; inactive entries are untouched."""
    ordered = sorted((e for e in entries if e.is_active), key=lambda e: e.joined_at)
    positions = {e.id: i for i, e in enumerate(ordered, start=1)}
    return [
        replace(e, position=positions[e.id]) if e.id in positions else e for e in entries
    ]


class WaitlistService:
    def __init__(
        self,
        enrollment: EnrollmentService,
        *,
        policy: PromotionPolicy | None = None,
        clock: Clock = _utcnow,
    ) -> None:
        self._enrollment = enrollment
        self._courses = enrollment.course_repo
        self._users = enrollment.user_repo
        self._store = enrollment.waitlist_store
        self._policy = policy or PromotionPolicy(SETTINGS.waitlist_policy)
        self._clock = clock

    @property
    def policy(self) -> PromotionPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Queue membership
    # ------------------------------------------------------------------

    async def add_to_waitlist(self, course_id: str, student_id: str) -> Result[WaitlistEntry]:
        result = await self._enrollment.run_locked(
            course_id, lambda: self._add(course_id, student_id)
        )
        if isinstance(result, Ok):
            logger.info(
                "Waitlisted student=%s course=%s position=%d",
                student_id,
                course_id,
                result.value.position,
                extra={"course_id": course_id, "student_id": student_id},
            )
        else:
            logger.info(
                "Waitlist join refused student=%s course=%s: %s",
                student_id,
                course_id,
                result.error.message,
                extra={"course_id": course_id, "student_id": student_id},
            )
        return result

    async def _add(self, course_id: str, student_id: str) -> Result[WaitlistEntry]:
        course = await self._courses.get_course_by_id(course_id)
        if isinstance(course, Err):
            return course
        if not course.value.is_full:
            return err(ErrorKind.COURSE_NOT_FULL)

        student = await self._users.get_user_by_id(student_id)
        if isinstance(student, Err):
            return student
        if not student.value.is_student:
            return err(ErrorKind.INVALID_ROLE)
        if course.value.is_student_enrolled(student_id):
            return err(ErrorKind.ALREADY_ENROLLED)

        entries = await self._load(course_id)
        if isinstance(entries, Err):
            return entries
        active = _active(entries.value)
        if any(e.student_id == student_id for e in active):
            return err(ErrorKind.ALREADY_WAITLISTED)

        entry = WaitlistEntry.new(
            course_id=course_id,
            student_id=student_id,
            position=(active[-1].position + 1) if active else 1,
            joined_at=self._clock(),
        )
        saved = await self._save(course_id, [*entries.value, entry])
        if isinstance(saved, Err):
            return saved
        return Ok(entry)

    async def remove_from_waitlist(self, course_id: str, student_id: str) -> Result[None]:
        result = await self._enrollment.run_locked(
            course_id, lambda: self._remove(course_id, student_id)
        )
        if isinstance(result, Ok):
            logger.info(
                "Removed student=%s from waitlist course=%s",
                student_id,
                course_id,
                extra={"course_id": course_id, "student_id": student_id},
            )
        return result

    async def _remove(self, course_id: str, student_id: str) -> Result[None]:
        entries = await self._load(course_id)
        if isinstance(entries, Err):
            return entries
        target = next(
            (e for e in entries.value if e.student_id == student_id and e.is_active), None
        )
        if target is None:
            return err(ErrorKind.NOT_ON_WAITLIST)
        remaining = [e for e in entries.value if e.id != target.id]
        return await self._save(course_id, _renumbered(remaining))

    # ------------------------------------------------------------------
    # Queue reads
    # ------------------------------------------------------------------

    async def get_waitlist(self, course_id: str) -> Result[list[WaitlistEntry]]:
        entries = await self._load(course_id)
        if isinstance(entries, Err):
            return entries
        return Ok(_active(entries.value))

    async def get_waitlist_position(self, course_id: str, student_id: str) -> Result[int | None]:
        waitlist = await self.get_waitlist(course_id)
        if isinstance(waitlist, Err):
            return waitlist
        for entry in waitlist.value:
            if entry.student_id == student_id:
                return Ok(entry.position)
        return Ok(None)

    async def is_on_waitlist(self, course_id: str, student_id: str) -> bool:
        position = await self.get_waitlist_position(course_id, student_id)
        return isinstance(position, Ok) and position.value is not None

    # ------------------------------------------------------------------
    # Promotion
    # ------------------------------------------------------------------

    async def process_waitlist_for_available_spot(
        self, course_id: str, policy: PromotionPolicy | None = None
    ) -> Result[WaitlistEntry | None]:
        chosen = policy or self._policy
        return await self._enrollment.run_locked(
            course_id, lambda: self._promote(course_id, chosen)
        )

    async def _promote(
        self, course_id: str, policy: PromotionPolicy
    ) -> Result[WaitlistEntry | None]:
        while True:
            entries = await self._load(course_id)
            if isinstance(entries, Err):
                return entries
            queue = _active(entries.value)
            if not queue:
                WAITLIST_PROMOTIONS.labels(outcome="empty").inc()
                logger.info("No students waiting course=%s", course_id, extra={"course_id": course_id})
                return Ok(None)

            # Re-read: the seat the caller saw may already be gone.
            course = await self._courses.get_course_by_id(course_id)
            if isinstance(course, Err):
                return course
            if not course.value.has_available_spots:
                WAITLIST_PROMOTIONS.labels(outcome="no_spot").inc()
                return err(ErrorKind.COURSE_FULL, "no seat available for promotion")

            head = queue[0]
            admitted = await self._enrollment.admit_from_waitlist(course_id, head.student_id)

            if isinstance(admitted, Ok):
                remaining = [e for e in entries.value if e.id != head.id]
                saved = await self._save(course_id, _renumbered(remaining))
                if isinstance(saved, Err):
                    return await self._release_seat(course_id, head.student_id, saved.error)
                WAITLIST_PROMOTIONS.labels(outcome="promoted").inc()
                logger.info(
                    "Promoted student=%s from waitlist course=%s",
                    head.student_id,
                    course_id,
                    extra={"course_id": course_id, "student_id": head.student_id},
                )
                return Ok(head)

            if (
                policy is PromotionPolicy.STOP_ON_FIRST_FAILURE
                or not _is_candidate_fault(admitted.error)
            ):
                WAITLIST_PROMOTIONS.labels(outcome="failed").inc()
                logger.warning(
                    "Failed to promote student=%s course=%s: %s",
                    head.student_id,
                    course_id,
                    admitted.error.message,
                    extra={"course_id": course_id, "student_id": head.student_id},
                )
                return admitted

            deactivated = [
                replace(e, is_active=False) if e.id == head.id else e for e in entries.value
            ]
            saved = await self._save(course_id, _renumbered(deactivated))
            if isinstance(saved, Err):
                return saved
            WAITLIST_PROMOTIONS.labels(outcome="skipped").inc()
            logger.warning(
                "Skipped waitlisted student=%s course=%s: %s",
                head.student_id,
                course_id,
                admitted.error.message,
                extra={"course_id": course_id, "student_id": head.student_id},
            )

    async def _release_seat(
        self, course_id: str, student_id: str, error: EnrollmentError
    ) -> Result[WaitlistEntry | None]:
        """Undo an admission whose waitlist entry could not be removed.

        The student keeps their place in the queue; a later promotion
        retries them.
        """
        WAITLIST_PROMOTIONS.labels(outcome="failed").inc()
        undo = await self._courses.unenroll_student(course_id, student_id)
        if isinstance(undo, Ok):
            logger.warning(
                "Promotion rolled back student=%s course=%s: %s",
                student_id,
                course_id,
                error.message,
                extra={"course_id": course_id, "student_id": student_id},
            )
            return Err(error)

        logger.error(
            "Promotion rollback failed; student=%s enrolled in and waitlisted for course=%s",
            student_id,
            course_id,
            extra={"course_id": course_id, "student_id": student_id},
        )
        return Err(
            EnrollmentError.compensation_failed(
                error, undo.error, state="student remains enrolled and waitlisted"
            )
        )

    # ------------------------------------------------------------------
    # Reporting and cleanup
    # ------------------------------------------------------------------

    async def get_waitlist_statistics(self, course_id: str) -> Result[dict]:
        waitlist = await self.get_waitlist(course_id)
        if isinstance(waitlist, Err):
            return waitlist
        entries = waitlist.value
        now = self._clock()

        if entries:
            # Whole hours per entry, then averaged.
            hours = [int((now - e.joined_at).total_seconds() // 3600) for e in entries]
            average_wait_hours = sum(hours) / len(hours)
            oldest = min(entries, key=lambda e: e.joined_at).joined_at.isoformat()
            newest = max(entries, key=lambda e: e.joined_at).joined_at.isoformat()
        else:
            average_wait_hours = 0.0
            oldest = newest = None

        return Ok(
            {
                "total_waitlisted": len(entries),
                "average_wait_hours": average_wait_hours,
                "oldest_entry": oldest,
                "newest_entry": newest,
                "waitlist_by_day": dict(
                    Counter(e.joined_at.strftime("%Y-%m-%d") for e in entries)
                ),
            }
        )

    async def get_student_waitlists(self, student_id: str) -> Result[list[WaitlistEntry]]:
        try:
            course_ids = await self._store.course_ids()
            found: list[WaitlistEntry] = []
            for course_id in course_ids:
                found.extend(
                    e
                    for e in await self._store.get(course_id)
                    if e.student_id == student_id and e.is_active
                )
        except WaitlistStoreError as e:
            return Err(EnrollmentError.repository_failure("Failed to read waitlists", e))
        found.sort(key=lambda e: e.joined_at)
        return Ok(found)

    async def clear_inactive_entries(self, course_id: str) -> Result[int]:
        return await self._enrollment.run_locked(
            course_id, lambda: self._clear_inactive(course_id)
        )

    async def _clear_inactive(self, course_id: str) -> Result[int]:
        entries = await self._load(course_id)
        if isinstance(entries, Err):
            return entries
        kept = [e for e in entries.value if e.is_active]
        removed = len(entries.value) - len(kept)
        if removed:
            saved = await self._save(course_id, _renumbered(kept))
            if isinstance(saved, Err):
                return saved
        logger.info(
            "Cleared %d inactive waitlist entries course=%s",
            removed,
            course_id,
            extra={"course_id": course_id},
        )
        return Ok(removed)

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    async def _load(self, course_id: str) -> Result[list[WaitlistEntry]]:
        try:
            return Ok(await self._store.get(course_id))
        except WaitlistStoreError as e:
            return Err(EnrollmentError.repository_failure("Failed to read waitlist", e))

    async def _save(self, course_id: str, entries: list[WaitlistEntry]) -> Result[None]:
        try:
            await self._store.put(course_id, entries)
        except WaitlistStoreError as e:
            return Err(EnrollmentError.repository_failure("Failed to write waitlist", e))
        return Ok(None)
