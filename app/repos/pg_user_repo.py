"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import EnrollmentError, ErrorKind
from app.core.result import Err, Ok, Result, err
from app.db.tables import UserRow
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy.

    Each call runs in its own short transaction from the session factory:
    the repo is a long-lived singleton shared by the services, not a
    request-scoped object.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get_user_by_id(self, user_id: str) -> Result[User]:
        try:
            async with self._sessions() as session:
                stmt = select(UserRow).where(UserRow.id == user_id)
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.exception("User lookup failed user_id=%s", user_id)
            return Err(EnrollmentError.repository_failure("Failed to load user", e))
        if row is None:
            return err(ErrorKind.STUDENT_NOT_FOUND, user_id)
        return Ok(row_to_user(row))

    async def add(self, user: User) -> None:
        async with self._sessions.begin() as session:
            session.add(
                UserRow(
                    id=user.id,
                    email=user.email,
                    name=user.name,
                    role=user.role.value,
                    is_active=user.is_active,
                )
            )

    async def get_many(self, user_ids: Iterable[str]) -> list[User]:
        ids = list(user_ids)
        if not ids:
            return []
        async with self._sessions() as session:
            stmt = select(UserRow).where(UserRow.id.in_(ids))
            rows = (await session.execute(stmt)).scalars().all()
        by_id = {row.id: row_to_user(row) for row in rows}
        return [by_id[uid] for uid in ids if uid in by_id]


def row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name or "",
        role=UserRole(row.role),
        is_active=row.is_active,
    )
