from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from app.core.errors import ErrorKind
from app.core.result import Ok, Result, err
from app.models.user import User


class UserRepo(Protocol):
    async def get_user_by_id(self, user_id: str) -> Result[User]: ...
    async def add(self, user: User) -> None: ...
    async def get_many(self, user_ids: Iterable[str]) -> list[User]: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, User] = {}
        self._emails: set[str] = set()

    async def get_user_by_id(self, user_id: str) -> Result[User]:
        user = self._by_id.get(user_id)
        if user is None:
            return err(ErrorKind.STUDENT_NOT_FOUND, user_id)
        return Ok(user)

    async def add(self, user: User) -> None:
        if user.email in self._emails:
            raise ValueError("email already exists")
        self._emails.add(user.email)
        self._by_id[user.id] = user

    async def get_many(self, user_ids: Iterable[str]) -> list[User]:
        # Unknown ids are skipped; order follows user_ids.
        return [self._by_id[uid] for uid in user_ids if uid in self._by_id]
