"""Mapping from EnrollmentError to HTTP responses.

Routes raise EnrollmentApiError(result.error); the handler registered
in app.main renders it as

    {"error": "<kind>", "message": "...", "reasons": ["<kind>", ...]}

with a status chosen by kind.
"""

from __future__ import annotations

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.core.errors import EnrollmentError, ErrorKind

logger = logging.getLogger(__name__)

_STATUS: dict[ErrorKind, int] = {
    ErrorKind.COURSE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.STUDENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.NOT_ENROLLED: status.HTTP_404_NOT_FOUND,
    ErrorKind.NOT_ON_WAITLIST: status.HTTP_404_NOT_FOUND,
    ErrorKind.COURSE_UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorKind.COURSE_FULL: status.HTTP_409_CONFLICT,
    ErrorKind.COURSE_NOT_FULL: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_ROLE: status.HTTP_409_CONFLICT,
    ErrorKind.ALREADY_ENROLLED: status.HTTP_409_CONFLICT,
    ErrorKind.ALREADY_WAITLISTED: status.HTTP_409_CONFLICT,
    ErrorKind.VALIDATION_FAILED: status.HTTP_409_CONFLICT,
    ErrorKind.REPOSITORY_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.COMPENSATION_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class EnrollmentApiError(Exception):
    def __init__(self, error: EnrollmentError) -> None:
        super().__init__(error.message)
        self.error = error


def status_for(error: EnrollmentError) -> int:
    # An aggregated failure for a course that does not exist is a 404, not a conflict.
    if error.kind is ErrorKind.VALIDATION_FAILED and ErrorKind.COURSE_NOT_FOUND in error.reasons:
        return status.HTTP_404_NOT_FOUND
    return _STATUS[error.kind]


async def enrollment_error_handler(_request: Request, exc: EnrollmentApiError) -> JSONResponse:
    error = exc.error
    code = status_for(error)
    if code >= 500:
        logger.error("Request failed: %s", error.message)
    return JSONResponse(
        status_code=code,
        content={
            "error": error.kind.value,
            "message": error.message,
            "reasons": [r.value for r in error.reasons],
        },
    )
