"""Typed failure values for admission control and the waitlist.

Expected business outcomes (a full course, a student who is not
enrolled) are returned as EnrollmentError values inside an Err, never
raised.  Each failure carries a machine-readable ErrorKind so callers
branch on the kind and tests assert on structure instead of message
text.  Aggregated validation is a single VALIDATION_FAILED error whose
`reasons` lists every rule that failed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ErrorKind(StrEnum):
    COURSE_NOT_FOUND = "course_not_found"
    STUDENT_NOT_FOUND = "student_not_found"
    COURSE_UNAVAILABLE = "course_unavailable"
    COURSE_FULL = "course_full"
    COURSE_NOT_FULL = "course_not_full"
    INVALID_ROLE = "invalid_role"
    ALREADY_ENROLLED = "already_enrolled"
    NOT_ENROLLED = "not_enrolled"
    ALREADY_WAITLISTED = "already_waitlisted"
    NOT_ON_WAITLIST = "not_on_waitlist"
    VALIDATION_FAILED = "validation_failed"
    REPOSITORY_FAILURE = "repository_failure"
    COMPENSATION_FAILED = "compensation_failed"


_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.COURSE_NOT_FOUND: "Course not found",
    ErrorKind.STUDENT_NOT_FOUND: "Student not found",
    ErrorKind.COURSE_UNAVAILABLE: "Course is not available for enrollment",
    ErrorKind.COURSE_FULL: "Course is full",
    ErrorKind.COURSE_NOT_FULL: "Course is not full, student can enroll directly",
    ErrorKind.INVALID_ROLE: "Only students can enroll in courses",
    ErrorKind.ALREADY_ENROLLED: "Student is already enrolled in this course",
    ErrorKind.NOT_ENROLLED: "Student is not enrolled in this course",
    ErrorKind.ALREADY_WAITLISTED: "Student is already on the waitlist for this course",
    ErrorKind.NOT_ON_WAITLIST: "Student is not on the waitlist for this course",
    ErrorKind.VALIDATION_FAILED: "Enrollment validation failed",
    ErrorKind.REPOSITORY_FAILURE: "Repository operation failed",
    ErrorKind.COMPENSATION_FAILED: "Transfer rollback failed",
}


@dataclass(frozen=True, slots=True)
class EnrollmentError:
    """A failed admission or waitlist operation.

    kind:         what went wrong.
    message:      human-readable text for logs and API responses.
    reasons:      for VALIDATION_FAILED, every violated rule in check order.
    cause:        the underlying failure: the repository exception for
                  REPOSITORY_FAILURE, the step that needed undoing for
                  COMPENSATION_FAILED.
    compensation: for COMPENSATION_FAILED, the error returned by the
                  undo step.
    """

    kind: ErrorKind
    message: str
    reasons: tuple[ErrorKind, ...] = ()
    cause: EnrollmentError | Exception | None = None
    compensation: EnrollmentError | None = None

    def __str__(self) -> str:
        return self.message

    def has_reason(self, kind: ErrorKind) -> bool:
        """True if `kind` is this error's kind or one of its reasons."""
        return self.kind is kind or kind in self.reasons

    @staticmethod
    def of(kind: ErrorKind, detail: str | None = None) -> EnrollmentError:
        message = _MESSAGES[kind]
        if detail:
            message = f"{message}: {detail}"
        return EnrollmentError(kind=kind, message=message)

    @staticmethod
    def validation_failed(reasons: list[ErrorKind]) -> EnrollmentError:
        listed = ", ".join(_MESSAGES[r] for r in reasons)
        return EnrollmentError(
            kind=ErrorKind.VALIDATION_FAILED,
            message=f"{_MESSAGES[ErrorKind.VALIDATION_FAILED]}: {listed}",
            reasons=tuple(reasons),
        )

    @staticmethod
    def repository_failure(context: str, exc: Exception) -> EnrollmentError:
        return EnrollmentError(
            kind=ErrorKind.REPOSITORY_FAILURE,
            message=f"{context}: {exc}",
            cause=exc,
        )

    @staticmethod
    def compensation_failed(
        original: EnrollmentError,
        compensation: EnrollmentError,
        state: str = "student remains enrolled in both courses",
    ) -> EnrollmentError:
        return EnrollmentError(
            kind=ErrorKind.COMPENSATION_FAILED,
            message=(
                f"{_MESSAGES[ErrorKind.COMPENSATION_FAILED]}; {state} "
                f"(failed step: {original.message}; rollback: {compensation.message})"
            ),
            cause=original,
            compensation=compensation,
        )
