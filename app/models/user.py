from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from uuid import uuid4


class UserRole(StrEnum):
    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


@dataclass(frozen=True, slots=True)
class User:
    id: str
    email: str
    name: str = ""
    role: UserRole = UserRole.STUDENT
    is_active: bool = True

    @property
    def is_student(self) -> bool:
        return self.role is UserRole.STUDENT

    @staticmethod
    def new(
        *,
        email: str,
        name: str = "",
        role: UserRole = UserRole.STUDENT,
        user_id: str | None = None,
    ) -> User:
        return User(
            id=user_id or str(uuid4()),
            email=email.strip().lower(),
            name=name,
            role=role,
            is_active=True,
        )
