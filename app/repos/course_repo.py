"""Course repository: the Protocol plus the in-memory implementation.

THE CAPACITY GUARD LIVES HERE
-----------------------------
`enroll_student` is the only way a seat is taken, and it is atomic:
"add the student iff the course is published, the student is not
already in the set, and the set is smaller than max_enrollment".
The services validate first so they can report every violated rule,
but their read happens before the write, and two callers can both read
"one seat left".  Only the repository primitive decides.

For the in-memory repo the check and the write run without an `await`
between them, so no other coroutine on the event loop can interleave.
PgCourseRepo does the same with one conditional UPDATE.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from app.core.errors import ErrorKind
from app.core.result import Ok, Result, err
from app.models.course import Course, CourseStatus
from app.models.user import User
from app.repos.user_repo import UserRepo


class CourseRepo(Protocol):
    async def get_course_by_id(self, course_id: str) -> Result[Course]: ...
    async def enroll_student(self, course_id: str, student_id: str) -> Result[None]:
        """Add student_id iff the course is published and has a free seat."""
        ...

    async def unenroll_student(self, course_id: str, student_id: str) -> Result[None]: ...
    async def is_student_enrolled(self, course_id: str, student_id: str) -> Result[bool]: ...
    async def get_enrolled_students(self, course_id: str) -> Result[list[User]]: ...
    async def get_enrolled_courses(
        self, student_id: str, limit: int = 10
    ) -> Result[list[Course]]: ...
    async def get_course_statistics(self, course_id: str) -> Result[dict[str, int]]: ...
    async def get_courses(self, limit: int | None = None) -> Result[list[Course]]: ...
    async def add(self, course: Course) -> None: ...
    async def set_status(self, course_id: str, status: CourseStatus) -> Result[Course]: ...


def course_statistics(course: Course) -> dict[str, int]:
    # Whole percent, halves rounded up.
    percent = (200 * course.enrolled_count + course.max_enrollment) // (2 * course.max_enrollment)
    return {
        "enrolled_count": course.enrolled_count,
        "max_enrollment": course.max_enrollment,
        "available_spots": course.available_spots,
        "enrollment_percentage": percent,
    }


class InMemoryCourseRepo:
    def __init__(self, users: UserRepo | None = None) -> None:
        self._courses: dict[str, Course] = {}
        self._users = users

    async def get_course_by_id(self, course_id: str) -> Result[Course]:
        course = self._courses.get(course_id)
        if course is None:
            return err(ErrorKind.COURSE_NOT_FOUND, course_id)
        return Ok(course)

    async def enroll_student(self, course_id: str, student_id: str) -> Result[None]:
        # No await below: check and write are one step on the event loop.
        course = self._courses.get(course_id)
        if course is None:
            return err(ErrorKind.COURSE_NOT_FOUND, course_id)
        if course.is_student_enrolled(student_id):
            return err(ErrorKind.ALREADY_ENROLLED)
        if not course.is_published:
            return err(ErrorKind.COURSE_UNAVAILABLE)
        if not course.has_available_spots:
            return err(ErrorKind.COURSE_FULL)
        self._courses[course_id] = course.with_student(student_id)
        return Ok(None)

    async def unenroll_student(self, course_id: str, student_id: str) -> Result[None]:
        course = self._courses.get(course_id)
        if course is None:
            return err(ErrorKind.COURSE_NOT_FOUND, course_id)
        if not course.is_student_enrolled(student_id):
            return err(ErrorKind.NOT_ENROLLED)
        self._courses[course_id] = course.without_student(student_id)
        return Ok(None)

    async def is_student_enrolled(self, course_id: str, student_id: str) -> Result[bool]:
        course = self._courses.get(course_id)
        if course is None:
            return err(ErrorKind.COURSE_NOT_FOUND, course_id)
        return Ok(course.is_student_enrolled(student_id))

    async def get_enrolled_students(self, course_id: str) -> Result[list[User]]:
        course = self._courses.get(course_id)
        if course is None:
            return err(ErrorKind.COURSE_NOT_FOUND, course_id)
        if self._users is None or not course.enrolled_student_ids:
            return Ok([])
        return Ok(await self._users.get_many(course.enrolled_student_ids))

    async def get_enrolled_courses(
        self, student_id: str, limit: int = 10
    ) -> Result[list[Course]]:
        courses = [c for c in self._courses.values() if c.is_student_enrolled(student_id)]
        courses.sort(key=lambda c: c.created_at, reverse=True)
        return Ok(courses[:limit])

    async def get_course_statistics(self, course_id: str) -> Result[dict[str, int]]:
        course = self._courses.get(course_id)
        if course is None:
            return err(ErrorKind.COURSE_NOT_FOUND, course_id)
        return Ok(course_statistics(course))

    async def get_courses(self, limit: int | None = None) -> Result[list[Course]]:
        courses = sorted(self._courses.values(), key=lambda c: c.created_at, reverse=True)
        return Ok(courses if limit is None else courses[:limit])

    async def add(self, course: Course) -> None:
        if len(set(course.enrolled_student_ids)) != course.enrolled_count:
            raise ValueError("enrolled_student_ids must be unique")
        if course.enrolled_count > course.max_enrollment:
            raise ValueError("enrolled_student_ids exceeds max_enrollment")
        self._courses[course.id] = course

    async def set_status(self, course_id: str, status: CourseStatus) -> Result[Course]:
        course = self._courses.get(course_id)
        if course is None:
            return err(ErrorKind.COURSE_NOT_FOUND, course_id)
        updated = replace(course, status=status)
        self._courses[course_id] = updated
        return Ok(updated)
