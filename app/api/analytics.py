from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.dependencies import get_analytics_service
from app.api.errors import EnrollmentApiError
from app.core.result import Err
from app.services.analytics_service import AnalyticsService

router = APIRouter(prefix="/v1/analytics", tags=["analytics"])


class SystemMetricsOut(BaseModel):
    total_courses: int
    total_students: int
    total_enrollments: int
    total_waitlisted: int
    average_enrollment_rate: float
    courses_by_status: dict[str, int]
    most_popular_course_ids: list[str]
    least_popular_course_ids: list[str]
    generated_at: str


@router.get("/enrollment", response_model=SystemMetricsOut)
async def get_system_metrics(
    analytics: Annotated[AnalyticsService, Depends(get_analytics_service)],
) -> SystemMetricsOut:
    result = await analytics.generate_system_metrics()
    if isinstance(result, Err):
        raise EnrollmentApiError(result.error)
    m = result.value
    return SystemMetricsOut(
        total_courses=m.total_courses,
        total_students=m.total_students,
        total_enrollments=m.total_enrollments,
        total_waitlisted=m.total_waitlisted,
        average_enrollment_rate=m.average_enrollment_rate,
        courses_by_status=m.courses_by_status,
        most_popular_course_ids=m.most_popular_course_ids,
        least_popular_course_ids=m.least_popular_course_ids,
        generated_at=m.generated_at.isoformat(),
    )
