from __future__ import annotations

import asyncio
from dataclasses import replace

from prometheus_client import REGISTRY

from app.core.errors import ErrorKind
from app.core.result import Err, Ok
from app.models.course import Course, CourseStatus
from app.models.enrollment import EnrollmentStatus
from app.models.user import User, UserRole
from app.repos.course_repo import InMemoryCourseRepo
from app.repos.user_repo import InMemoryUserRepo
from app.services.enrollment_service import EnrollmentService
from app.services.waitlist_service import WaitlistService


async def _service(
    *courses: Course, students: tuple[str, ...] = ("a", "b", "c"), instructors: tuple[str, ...] = ()
) -> EnrollmentService:
    users = InMemoryUserRepo()
    for uid in students:
        await users.add(User.new(email=f"{uid}@example.com", user_id=uid))
    for uid in instructors:
        await users.add(User.new(email=f"{uid}@example.com", user_id=uid, role=UserRole.INSTRUCTOR))
    repo = InMemoryCourseRepo(users=users)
    for course in courses:
        await repo.add(course)
    return EnrollmentService(repo, users)


def _course(
    course_id: str,
    max_enrollment: int = 2,
    enrolled: tuple[str, ...] = (),
    status: CourseStatus = CourseStatus.PUBLISHED,
) -> Course:
    course = Course.new(title=course_id, max_enrollment=max_enrollment, status=status, course_id=course_id)
    return replace(course, enrolled_student_ids=enrolled)


def _sample(name: str, labels: dict) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels)
    return value if value is not None else 0.0


# ---- enroll ----


def test_enroll_until_full() -> None:
    async def scenario():
        svc = await _service(_course("c1", max_enrollment=2))
        first = await svc.enroll_student("c1", "a")
        second = await svc.enroll_student("c1", "b")
        third = await svc.enroll_student("c1", "c")
        return first, second, third, await svc.course_repo.get_course_by_id("c1")

    first, second, third, course = asyncio.run(scenario())
    assert isinstance(first, Ok) and isinstance(second, Ok)
    assert course.value.is_full
    assert course.value.available_spots == 0
    assert isinstance(third, Err)
    assert third.error.has_reason(ErrorKind.COURSE_FULL)
    assert course.value.enrolled_student_ids == ("a", "b")


def test_enroll_reports_every_violated_rule_in_order() -> None:
    async def scenario():
        svc = await _service(
            _course("c1", max_enrollment=1, enrolled=("x",), status=CourseStatus.DRAFT),
            instructors=("prof",),
        )
        return await svc.enroll_student("c1", "prof")

    result = asyncio.run(scenario())
    assert isinstance(result, Err)
    assert result.error.kind is ErrorKind.VALIDATION_FAILED
    assert result.error.reasons == (
        ErrorKind.COURSE_UNAVAILABLE,
        ErrorKind.COURSE_FULL,
        ErrorKind.INVALID_ROLE,
    )


def test_enroll_unknown_course_and_student() -> None:
    async def scenario():
        svc = await _service()
        return await svc.enroll_student("nope", "ghost")

    result = asyncio.run(scenario())
    assert result.error.reasons == (ErrorKind.COURSE_NOT_FOUND, ErrorKind.STUDENT_NOT_FOUND)


def test_enroll_twice_is_already_enrolled() -> None:
    async def scenario():
        svc = await _service(_course("c1", max_enrollment=5))
        await svc.enroll_student("c1", "a")
        return await svc.enroll_student("c1", "a")

    result = asyncio.run(scenario())
    assert result.error.reasons == (ErrorKind.ALREADY_ENROLLED,)


def test_enroll_refused_while_on_waitlist() -> None:
    async def scenario():
        svc = await _service(_course("c1", max_enrollment=1, enrolled=("a",)))
        waitlists = WaitlistService(svc)
        await waitlists.add_to_waitlist("c1", "b")
        # Free the seat without promoting.
        await svc.unenroll_student("c1", "a")
        return await svc.enroll_student("c1", "b")

    result = asyncio.run(scenario())
    assert isinstance(result, Err)
    assert result.error.reasons == (ErrorKind.ALREADY_WAITLISTED,)


def test_enroll_counts_outcomes() -> None:
    labels_ok = {"operation": "enroll", "outcome": "ok"}
    labels_bad = {"operation": "enroll", "outcome": "validation_failed"}
    before_ok = _sample("enrollment_operations_total", labels_ok)
    before_bad = _sample("enrollment_operations_total", labels_bad)

    async def scenario():
        svc = await _service(_course("c1", max_enrollment=1))
        await svc.enroll_student("c1", "a")
        await svc.enroll_student("c1", "b")

    asyncio.run(scenario())
    assert _sample("enrollment_operations_total", labels_ok) - before_ok == 1
    assert _sample("enrollment_operations_total", labels_bad) - before_bad == 1


def test_concurrent_enrollments_respect_capacity() -> None:
    async def scenario():
        students = tuple(f"s{i}" for i in range(20))
        svc = await _service(_course("c1", max_enrollment=5), students=students)
        results = await asyncio.gather(*(svc.enroll_student("c1", s) for s in students))
        return results, await svc.course_repo.get_course_by_id("c1")

    results, course = asyncio.run(scenario())
    assert sum(isinstance(r, Ok) for r in results) == 5
    assert course.value.enrolled_count == 5


# ---- unenroll ----


def test_unenroll_is_idempotent_in_effect() -> None:
    async def scenario():
        svc = await _service(_course("c1", enrolled=("a",)))
        return await svc.unenroll_student("c1", "a"), await svc.unenroll_student("c1", "a")

    first, second = asyncio.run(scenario())
    assert isinstance(first, Ok)
    assert isinstance(second, Err)
    assert second.error.kind is ErrorKind.NOT_ENROLLED


def test_unenroll_unknown_course() -> None:
    result = asyncio.run(_unenroll_missing())
    assert result.error.kind is ErrorKind.COURSE_NOT_FOUND


async def _unenroll_missing():
    svc = await _service()
    return await svc.unenroll_student("nope", "a")


# ---- transfer ----


def test_transfer_into_full_course_changes_nothing() -> None:
    async def scenario():
        svc = await _service(
            _course("c1", enrolled=("a",)),
            _course("c2", max_enrollment=1, enrolled=("b",)),
        )
        result = await svc.transfer_student("c1", "c2", "a")
        return (
            result,
            await svc.course_repo.get_course_by_id("c1"),
            await svc.course_repo.get_course_by_id("c2"),
        )

    result, c1, c2 = asyncio.run(scenario())
    assert isinstance(result, Err)
    assert result.error.kind is ErrorKind.VALIDATION_FAILED
    assert result.error.has_reason(ErrorKind.COURSE_FULL)
    assert c1.value.enrolled_student_ids == ("a",)
    assert c2.value.enrolled_student_ids == ("b",)


def test_transfer_moves_student() -> None:
    async def scenario():
        svc = await _service(_course("c1", enrolled=("a",)), _course("c2"))
        result = await svc.transfer_student("c1", "c2", "a")
        return (
            result,
            await svc.course_repo.is_student_enrolled("c1", "a"),
            await svc.course_repo.is_student_enrolled("c2", "a"),
        )

    result, in_source, in_target = asyncio.run(scenario())
    assert isinstance(result, Ok)
    assert in_source.value is False
    assert in_target.value is True


def test_transfer_to_missing_course() -> None:
    async def scenario():
        svc = await _service(_course("c1", enrolled=("a",)))
        return await svc.transfer_student("c1", "nope", "a")

    result = asyncio.run(scenario())
    assert result.error.kind is ErrorKind.COURSE_NOT_FOUND


# ---- reads ----


def test_get_enrollment_info_for_enrolled_student() -> None:
    async def scenario():
        svc = await _service(_course("c1", enrolled=("a",)))
        return await svc.get_enrollment_info("c1", "a")

    info = asyncio.run(scenario()).value
    assert info.status is EnrollmentStatus.ENROLLED
    assert info.enrolled_count == 1


def test_can_student_enroll_fails_closed() -> None:
    async def scenario():
        svc = await _service(_course("c1"), _course("c2", status=CourseStatus.ARCHIVED))
        return (
            await svc.can_student_enroll("c1", "a"),
            await svc.can_student_enroll("c2", "a"),
            await svc.can_student_enroll("missing", "a"),
        )

    assert asyncio.run(scenario()) == (True, False, False)


def test_enrollment_statistics() -> None:
    async def scenario():
        svc = await _service(_course("c1", max_enrollment=10, enrolled=tuple("abcdefghi")))
        return await svc.get_enrollment_statistics("c1")

    stats = asyncio.run(scenario()).value
    assert stats["enrolled_count"] == 9
    assert stats["available_spots"] == 1
    assert stats["enrollment_percentage"] == 90
    assert stats["is_nearly_full"] is True
    assert stats["is_full"] is False
    assert stats["enrollment_rate"] == 0.9


def test_statistics_agree_with_course_just_past_eighty_percent() -> None:
    students = tuple(f"s{i}" for i in range(161))
    course = _course("c1", max_enrollment=200, enrolled=students)

    async def scenario():
        svc = await _service(course)
        return await svc.get_enrollment_statistics("c1")

    stats = asyncio.run(scenario()).value
    assert course.is_nearly_full
    assert stats["enrollment_percentage"] == 81
    assert stats["is_nearly_full"] is True
    assert stats["enrollment_rate"] == 161 / 200


def test_enrolled_students_and_courses() -> None:
    async def scenario():
        svc = await _service(_course("c1", enrolled=("a", "b")), _course("c2", enrolled=("a",)))
        return (
            await svc.get_enrolled_students("c1"),
            await svc.get_student_enrolled_courses("a"),
        )

    students, courses = asyncio.run(scenario())
    assert [u.id for u in students.value] == ["a", "b"]
    assert {c.id for c in courses.value} == {"c1", "c2"}


def test_bulk_info_skips_unknown_courses() -> None:
    async def scenario():
        svc = await _service(_course("c1"), _course("c2", max_enrollment=1, enrolled=("b",)))
        return await svc.get_bulk_enrollment_info(["c1", "missing", "c2"], "a")

    infos = asyncio.run(scenario()).value
    assert set(infos) == {"c1", "c2"}
    assert infos["c1"].status is EnrollmentStatus.NOT_ENROLLED
    assert infos["c2"].status is EnrollmentStatus.FULL
