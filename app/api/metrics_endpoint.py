"""Prometheus scrape endpoint (text exposition format, not JSON).

Besides the HTTP request metrics this exposes the admission counters
declared in app.core.metrics, e.g.

  enrollment_operations_total{operation="enroll",outcome="validation_failed"} 3.0
  waitlist_promotions_total{outcome="promoted"} 12.0
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
