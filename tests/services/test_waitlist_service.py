from __future__ import annotations

import asyncio
import datetime
from dataclasses import replace

from prometheus_client import REGISTRY

from app.core.errors import ErrorKind
from app.core.result import Err, Ok
from app.models.course import Course, CourseStatus
from app.models.user import User
from app.models.waitlist import WaitlistEntry
from app.repos.course_repo import InMemoryCourseRepo
from app.repos.user_repo import InMemoryUserRepo
from app.services.enrollment_service import EnrollmentService
from app.services.waitlist_service import PromotionPolicy, WaitlistService

_T0 = datetime.datetime(2024, 9, 2, 8, 0, tzinfo=datetime.UTC)


class _Clock:
    """Advances one hour per call unless pinned."""

    def __init__(self) -> None:
        self.now = _T0

    def __call__(self) -> datetime.datetime:
        current = self.now
        self.now += datetime.timedelta(hours=1)
        return current


async def _services(
    *,
    max_enrollment: int = 2,
    enrolled: tuple[str, ...] = ("a", "b"),
    students: tuple[str, ...] = ("a", "b", "c", "d", "e"),
    policy: PromotionPolicy = PromotionPolicy.STOP_ON_FIRST_FAILURE,
    clock: _Clock | None = None,
) -> tuple[EnrollmentService, WaitlistService]:
    users = InMemoryUserRepo()
    for uid in students:
        await users.add(User.new(email=f"{uid}@example.com", user_id=uid))
    repo = InMemoryCourseRepo(users=users)
    course = Course.new(
        title="Compilers",
        max_enrollment=max_enrollment,
        status=CourseStatus.PUBLISHED,
        course_id="c1",
    )
    await repo.add(replace(course, enrolled_student_ids=enrolled))
    enrollment = EnrollmentService(repo, users)
    return enrollment, WaitlistService(enrollment, policy=policy, clock=clock or _Clock())


def _positions(entries: list[WaitlistEntry]) -> list[tuple[str, int]]:
    return [(e.student_id, e.position) for e in entries]


# ---- joining and leaving ----


def test_positions_follow_join_order() -> None:
    async def scenario():
        _, waitlists = await _services()
        c = await waitlists.add_to_waitlist("c1", "c")
        d = await waitlists.add_to_waitlist("c1", "d")
        return c, d

    c, d = asyncio.run(scenario())
    assert c.value.position == 1
    assert d.value.position == 2
    assert c.value.is_active


def test_join_requires_full_course() -> None:
    async def scenario():
        _, waitlists = await _services(max_enrollment=3)
        return await waitlists.add_to_waitlist("c1", "c")

    result = asyncio.run(scenario())
    assert isinstance(result, Err)
    assert result.error.kind is ErrorKind.COURSE_NOT_FULL


def test_join_refusals() -> None:
    async def scenario():
        _, waitlists = await _services()
        await waitlists.add_to_waitlist("c1", "c")
        return (
            await waitlists.add_to_waitlist("c1", "c"),
            await waitlists.add_to_waitlist("c1", "a"),
            await waitlists.add_to_waitlist("c1", "ghost"),
            await waitlists.add_to_waitlist("nope", "c"),
        )

    dup, enrolled, ghost, missing = asyncio.run(scenario())
    assert dup.error.kind is ErrorKind.ALREADY_WAITLISTED
    assert enrolled.error.kind is ErrorKind.ALREADY_ENROLLED
    assert ghost.error.kind is ErrorKind.STUDENT_NOT_FOUND
    assert missing.error.kind is ErrorKind.COURSE_NOT_FOUND


def test_remove_renumbers_remaining_entries() -> None:
    async def scenario():
        _, waitlists = await _services()
        for sid in ("c", "d", "e"):
            await waitlists.add_to_waitlist("c1", sid)
        await waitlists.remove_from_waitlist("c1", "d")
        return await waitlists.get_waitlist("c1")

    assert _positions(asyncio.run(scenario()).value) == [("c", 1), ("e", 2)]


def test_add_then_remove_restores_queue() -> None:
    async def scenario():
        _, waitlists = await _services()
        await waitlists.add_to_waitlist("c1", "c")
        await waitlists.add_to_waitlist("c1", "d")
        before = await waitlists.get_waitlist("c1")
        await waitlists.add_to_waitlist("c1", "e")
        await waitlists.remove_from_waitlist("c1", "e")
        return before, await waitlists.get_waitlist("c1")

    before, after = asyncio.run(scenario())
    assert after.value == before.value


def test_remove_when_not_waiting() -> None:
    async def scenario():
        _, waitlists = await _services()
        return await waitlists.remove_from_waitlist("c1", "c")

    assert asyncio.run(scenario()).error.kind is ErrorKind.NOT_ON_WAITLIST


def test_position_lookup() -> None:
    async def scenario():
        _, waitlists = await _services()
        await waitlists.add_to_waitlist("c1", "c")
        await waitlists.add_to_waitlist("c1", "d")
        return (
            await waitlists.get_waitlist_position("c1", "d"),
            await waitlists.get_waitlist_position("c1", "e"),
            await waitlists.is_on_waitlist("c1", "c"),
        )

    d, e, c_waiting = asyncio.run(scenario())
    assert d.value == 2
    assert e.value is None
    assert c_waiting is True


# ---- promotion ----


def test_freed_seat_goes_to_head_of_queue() -> None:
    async def scenario():
        enrollment, waitlists = await _services()
        await waitlists.add_to_waitlist("c1", "c")
        await waitlists.add_to_waitlist("c1", "d")
        await enrollment.unenroll_student("c1", "a")
        promoted = await waitlists.process_waitlist_for_available_spot("c1")
        return (
            promoted,
            await enrollment.course_repo.get_course_by_id("c1"),
            await waitlists.get_waitlist("c1"),
        )

    promoted, course, queue = asyncio.run(scenario())
    assert promoted.value.student_id == "c"
    assert course.value.is_student_enrolled("c")
    assert _positions(queue.value) == [("d", 1)]


def test_promotion_with_empty_queue_returns_none() -> None:
    async def scenario():
        enrollment, waitlists = await _services()
        await enrollment.unenroll_student("c1", "a")
        return await waitlists.process_waitlist_for_available_spot("c1")

    result = asyncio.run(scenario())
    assert isinstance(result, Ok)
    assert result.value is None


def test_promotion_without_free_seat_leaves_queue() -> None:
    async def scenario():
        _, waitlists = await _services()
        await waitlists.add_to_waitlist("c1", "c")
        result = await waitlists.process_waitlist_for_available_spot("c1")
        return result, await waitlists.get_waitlist("c1")

    result, queue = asyncio.run(scenario())
    assert result.error.kind is ErrorKind.COURSE_FULL
    assert _positions(queue.value) == [("c", 1)]


async def _queue_with_unknown_head(policy: PromotionPolicy):
    enrollment, waitlists = await _services(policy=policy)
    await waitlists.add_to_waitlist("c1", "c")
    # A head whose account has since disappeared.
    entries = await enrollment.waitlist_store.get("c1")
    ghost = WaitlistEntry.new(
        course_id="c1", student_id="ghost", position=1, joined_at=_T0 - datetime.timedelta(days=1)
    )
    bumped = [replace(e, position=2) for e in entries]
    await enrollment.waitlist_store.put("c1", [ghost, *bumped])
    await enrollment.unenroll_student("c1", "a")
    return enrollment, waitlists


def test_stop_policy_returns_head_failure() -> None:
    async def scenario():
        enrollment, waitlists = await _queue_with_unknown_head(
            PromotionPolicy.STOP_ON_FIRST_FAILURE
        )
        result = await waitlists.process_waitlist_for_available_spot("c1")
        return result, await waitlists.get_waitlist("c1")

    result, queue = asyncio.run(scenario())
    assert isinstance(result, Err)
    assert result.error.has_reason(ErrorKind.STUDENT_NOT_FOUND)
    assert _positions(queue.value) == [("ghost", 1), ("c", 2)]


def test_advance_policy_skips_bad_candidate() -> None:
    before = REGISTRY.get_sample_value("waitlist_promotions_total", {"outcome": "skipped"}) or 0.0

    async def scenario():
        enrollment, waitlists = await _queue_with_unknown_head(
            PromotionPolicy.ADVANCE_TO_NEXT_CANDIDATE
        )
        result = await waitlists.process_waitlist_for_available_spot("c1")
        return (
            result,
            await waitlists.get_waitlist("c1"),
            await enrollment.waitlist_store.get("c1"),
        )

    result, queue, stored = asyncio.run(scenario())
    assert result.value.student_id == "c"
    assert queue.value == []
    assert [(e.student_id, e.is_active) for e in stored] == [("ghost", False)]
    after = REGISTRY.get_sample_value("waitlist_promotions_total", {"outcome": "skipped"})
    assert after - before == 1


def test_policy_can_be_chosen_per_call() -> None:
    async def scenario():
        _, waitlists = await _queue_with_unknown_head(PromotionPolicy.STOP_ON_FIRST_FAILURE)
        return await waitlists.process_waitlist_for_available_spot(
            "c1", PromotionPolicy.ADVANCE_TO_NEXT_CANDIDATE
        )

    assert asyncio.run(scenario()).value.student_id == "c"


def test_clear_inactive_entries() -> None:
    async def scenario():
        _, waitlists = await _queue_with_unknown_head(PromotionPolicy.ADVANCE_TO_NEXT_CANDIDATE)
        await waitlists.process_waitlist_for_available_spot("c1")
        first = await waitlists.clear_inactive_entries("c1")
        second = await waitlists.clear_inactive_entries("c1")
        return first, second

    first, second = asyncio.run(scenario())
    assert first.value == 1
    assert second.value == 0


# ---- reporting ----


def test_waitlist_statistics() -> None:
    clock = _Clock()

    async def scenario():
        _, waitlists = await _services(clock=clock)
        await waitlists.add_to_waitlist("c1", "c")  # joined T0
        await waitlists.add_to_waitlist("c1", "d")  # joined T0 + 1h
        clock.now = _T0 + datetime.timedelta(hours=5, minutes=30)
        return await waitlists.get_waitlist_statistics("c1")

    stats = asyncio.run(scenario()).value
    assert stats["total_waitlisted"] == 2
    # 5h and 4h waited, whole hours.
    assert stats["average_wait_hours"] == 4.5
    assert stats["oldest_entry"] == _T0.isoformat()
    assert stats["newest_entry"] == (_T0 + datetime.timedelta(hours=1)).isoformat()
    assert stats["waitlist_by_day"] == {"2024-09-02": 2}


def test_empty_waitlist_statistics() -> None:
    async def scenario():
        _, waitlists = await _services()
        return await waitlists.get_waitlist_statistics("c1")

    stats = asyncio.run(scenario()).value
    assert stats["total_waitlisted"] == 0
    assert stats["oldest_entry"] is None


def test_student_waitlists_span_courses() -> None:
    async def scenario():
        enrollment, waitlists = await _services()
        second = Course.new(
            title="Networks", max_enrollment=1, status=CourseStatus.PUBLISHED, course_id="c2"
        )
        await enrollment.course_repo.add(replace(second, enrolled_student_ids=("a",)))
        await waitlists.add_to_waitlist("c1", "c")
        await waitlists.add_to_waitlist("c2", "c")
        await waitlists.add_to_waitlist("c2", "d")
        return await waitlists.get_student_waitlists("c")

    entries = asyncio.run(scenario()).value
    assert [e.course_id for e in entries] == ["c1", "c2"]
