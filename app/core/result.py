"""Ok / Err result values returned by every public enrollment operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from app.core.errors import EnrollmentError, ErrorKind

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True

    @property
    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Err:
    error: EnrollmentError

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def is_err(self) -> bool:
        return True

    def unwrap(self):
        # Programming error: callers must check is_ok / isinstance first.
        raise RuntimeError(f"unwrap() called on Err: {self.error.message}")


Result = Ok[T] | Err


def err(kind: ErrorKind, detail: str | None = None) -> Err:
    """Shorthand for Err(EnrollmentError.of(kind, detail))."""
    return Err(EnrollmentError.of(kind, detail))
