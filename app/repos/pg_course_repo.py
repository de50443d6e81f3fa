"""PostgreSQL implementation of CourseRepo.

enroll_student is one conditional UPDATE:

    UPDATE courses
       SET enrolled_student_ids = array_append(enrolled_student_ids, :sid)
     WHERE id = :cid
       AND status = 'published'
       AND cardinality(enrolled_student_ids) < max_enrollment
       AND NOT enrolled_student_ids @> ARRAY[:sid]

Postgres takes a row lock for the UPDATE and re-evaluates the WHERE
clause against the latest committed row, so two concurrent enrollments
for the last seat cannot both match.  When no row matched we re-read
the course in the same transaction only to say *why*.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, not_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import EnrollmentError, ErrorKind
from app.core.result import Err, Ok, Result, err
from app.db.tables import CourseRow, UserRow
from app.models.course import Course, CourseStatus
from app.models.user import User
from app.repos.course_repo import course_statistics
from app.repos.pg_user_repo import row_to_user

logger = logging.getLogger(__name__)


class PgCourseRepo:
    """Satisfies the CourseRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get_course_by_id(self, course_id: str) -> Result[Course]:
        try:
            async with self._sessions() as session:
                row = await session.get(CourseRow, course_id)
        except SQLAlchemyError as e:
            return _failure("Failed to load course", course_id, e)
        if row is None:
            return err(ErrorKind.COURSE_NOT_FOUND, course_id)
        return Ok(_row_to_course(row))

    async def enroll_student(self, course_id: str, student_id: str) -> Result[None]:
        ids = CourseRow.enrolled_student_ids
        stmt = (
            update(CourseRow)
            .where(
                CourseRow.id == course_id,
                CourseRow.status == CourseStatus.PUBLISHED.value,
                func.cardinality(ids) < CourseRow.max_enrollment,
                not_(ids.contains([student_id])),
            )
            .values(enrolled_student_ids=func.array_append(ids, student_id))
        )
        try:
            async with self._sessions.begin() as session:
                result = await session.execute(stmt)
                if result.rowcount == 1:
                    return Ok(None)
                row = await session.get(CourseRow, course_id)
        except SQLAlchemyError as e:
            return _failure("Failed to enroll student", course_id, e)

        if row is None:
            return err(ErrorKind.COURSE_NOT_FOUND, course_id)
        course = _row_to_course(row)
        if course.is_student_enrolled(student_id):
            return err(ErrorKind.ALREADY_ENROLLED)
        if not course.is_published:
            return err(ErrorKind.COURSE_UNAVAILABLE)
        return err(ErrorKind.COURSE_FULL)

    async def unenroll_student(self, course_id: str, student_id: str) -> Result[None]:
        ids = CourseRow.enrolled_student_ids
        stmt = (
            update(CourseRow)
            .where(CourseRow.id == course_id, ids.contains([student_id]))
            .values(enrolled_student_ids=func.array_remove(ids, student_id))
        )
        try:
            async with self._sessions.begin() as session:
                result = await session.execute(stmt)
                if result.rowcount == 1:
                    return Ok(None)
                exists = await session.get(CourseRow, course_id) is not None
        except SQLAlchemyError as e:
            return _failure("Failed to unenroll student", course_id, e)
        if not exists:
            return err(ErrorKind.COURSE_NOT_FOUND, course_id)
        return err(ErrorKind.NOT_ENROLLED)

    async def is_student_enrolled(self, course_id: str, student_id: str) -> Result[bool]:
        loaded = await self.get_course_by_id(course_id)
        if isinstance(loaded, Err):
            return loaded
        return Ok(loaded.value.is_student_enrolled(student_id))

    async def get_enrolled_students(self, course_id: str) -> Result[list[User]]:
        loaded = await self.get_course_by_id(course_id)
        if isinstance(loaded, Err):
            return loaded
        student_ids = list(loaded.value.enrolled_student_ids)
        if not student_ids:
            return Ok([])
        try:
            async with self._sessions() as session:
                stmt = select(UserRow).where(UserRow.id.in_(student_ids))
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            return _failure("Failed to load enrolled students", course_id, e)
        by_id = {row.id: row_to_user(row) for row in rows}
        return Ok([by_id[sid] for sid in student_ids if sid in by_id])

    async def get_enrolled_courses(
        self, student_id: str, limit: int = 10
    ) -> Result[list[Course]]:
        stmt = (
            select(CourseRow)
            .where(CourseRow.enrolled_student_ids.contains([student_id]))
            .order_by(CourseRow.created_at.desc())
            .limit(limit)
        )
        try:
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            return _failure("Failed to load enrolled courses", student_id, e)
        return Ok([_row_to_course(r) for r in rows])

    async def get_course_statistics(self, course_id: str) -> Result[dict[str, int]]:
        loaded = await self.get_course_by_id(course_id)
        if isinstance(loaded, Err):
            return loaded
        return Ok(course_statistics(loaded.value))

    async def get_courses(self, limit: int | None = None) -> Result[list[Course]]:
        stmt = select(CourseRow).order_by(CourseRow.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            return _failure("Failed to load courses", "*", e)
        return Ok([_row_to_course(r) for r in rows])

    async def add(self, course: Course) -> None:
        async with self._sessions.begin() as session:
            session.add(
                CourseRow(
                    id=course.id,
                    title=course.title,
                    max_enrollment=course.max_enrollment,
                    enrolled_student_ids=list(course.enrolled_student_ids),
                    status=course.status.value,
                    created_at=course.created_at,
                )
            )

    async def set_status(self, course_id: str, status: CourseStatus) -> Result[Course]:
        stmt = (
            update(CourseRow)
            .where(CourseRow.id == course_id)
            .values(status=status.value)
            .returning(CourseRow)
        )
        try:
            async with self._sessions.begin() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            return _failure("Failed to update course status", course_id, e)
        if row is None:
            return err(ErrorKind.COURSE_NOT_FOUND, course_id)
        return Ok(_row_to_course(row))


def _failure(context: str, key: str, exc: SQLAlchemyError) -> Err:
    logger.exception("%s key=%s", context, key)
    return Err(EnrollmentError.repository_failure(context, exc))


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        title=row.title,
        max_enrollment=row.max_enrollment,
        created_at=row.created_at,
        enrolled_student_ids=tuple(row.enrolled_student_ids or ()),
        status=CourseStatus(row.status),
    )
