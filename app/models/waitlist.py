from __future__ import annotations

import datetime
from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True, slots=True)
class WaitlistEntry:
    """One student's place in a course's waitlist.

    For a given course, active entries hold positions 1..N in ascending
    joined_at order.  Inactive entries keep their last position until
    they are purged and never count toward the queue.
    """

    id: str
    course_id: str
    student_id: str
    joined_at: datetime.datetime
    position: int
    is_active: bool = True

    @staticmethod
    def new(
        *,
        course_id: str,
        student_id: str,
        position: int,
        joined_at: datetime.datetime,
    ) -> WaitlistEntry:
        return WaitlistEntry(
            id=f"waitlist_{uuid4().hex}",
            course_id=course_id,
            student_id=student_id,
            joined_at=joined_at,
            position=position,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "course_id": self.course_id,
            "student_id": self.student_id,
            "joined_at": self.joined_at.isoformat(),
            "position": self.position,
            "is_active": self.is_active,
        }

    @staticmethod
    def from_dict(data: dict) -> WaitlistEntry:
        return WaitlistEntry(
            id=data["id"],
            course_id=data["course_id"],
            student_id=data["student_id"],
            joined_at=datetime.datetime.fromisoformat(data["joined_at"]),
            position=int(data["position"]),
            is_active=bool(data.get("is_active", True)),
        )
