from __future__ import annotations

from dataclasses import replace

import pytest

from app.models.course import Course, CourseStatus


def _course(max_enrollment: int = 10, enrolled: int = 0, **kw) -> Course:
    course = Course.new(title="Algorithms", max_enrollment=max_enrollment, **kw)
    return replace(course, enrolled_student_ids=tuple(f"s{i}" for i in range(enrolled)))


def test_new_defaults_to_draft_with_fifty_seats() -> None:
    course = Course.new(title="Algorithms")
    assert course.status is CourseStatus.DRAFT
    assert course.max_enrollment == 50
    assert course.enrolled_student_ids == ()
    assert course.created_at.tzinfo is not None


@pytest.mark.parametrize("max_enrollment", [0, -1])
def test_new_rejects_non_positive_capacity(max_enrollment: int) -> None:
    with pytest.raises(ValueError, match="max_enrollment"):
        Course.new(title="Broken", max_enrollment=max_enrollment)


def test_derived_counts() -> None:
    course = _course(max_enrollment=10, enrolled=4)
    assert course.enrolled_count == 4
    assert course.available_spots == 6
    assert course.has_available_spots is True
    assert course.is_full is False
    assert course.enrollment_percentage == 40.0


def test_nearly_full_is_strictly_above_eighty_percent() -> None:
    assert _course(max_enrollment=10, enrolled=8).is_nearly_full is False
    assert _course(max_enrollment=10, enrolled=9).is_nearly_full is True


def test_full_course_cannot_accept_enrollments() -> None:
    course = _course(max_enrollment=2, enrolled=2, status=CourseStatus.PUBLISHED)
    assert course.is_full is True
    assert course.can_accept_enrollments is False


@pytest.mark.parametrize(
    "status", [CourseStatus.DRAFT, CourseStatus.SUSPENDED, CourseStatus.ARCHIVED]
)
def test_only_published_courses_accept_enrollments(status: CourseStatus) -> None:
    course = _course(status=status)
    assert course.is_published is False
    assert course.can_accept_enrollments is False


def test_with_and_without_student_return_new_values() -> None:
    course = _course()
    joined = course.with_student("alice")
    assert joined.is_student_enrolled("alice")
    assert not course.is_student_enrolled("alice")
    assert joined.without_student("alice").enrolled_student_ids == ()


def test_course_is_frozen() -> None:
    course = _course()
    with pytest.raises(AttributeError):
        course.title = "Other"  # type: ignore[misc]
