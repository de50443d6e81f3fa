"""Health and readiness endpoints.

  /health (liveness): the process answers.  Always 200; `status` says
    "degraded" when a configured backend is unreachable, because
    restarting the container would not bring Redis or Postgres back.

  /ready (readiness): can this instance serve enrollments right now?
    503 when a configured backend is down, so the load balancer stops
    routing here until it recovers.  Backends that are not configured
    do not count: the in-memory fallbacks are always available.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from app.db.engine import engine, ping_database
from app.db.redis import redis_pool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_backends() -> dict[str, str]:
    checks: dict[str, str] = {}

    if redis_pool is not None:
        try:
            await redis_pool.ping()  # type: ignore[misc]
            checks["redis"] = "ok"
        except RedisError:
            logger.warning("Redis health check failed", exc_info=True)
            checks["redis"] = "degraded"
    else:
        checks["redis"] = "not_configured"

    if engine is not None:
        try:
            await ping_database()
            checks["database"] = "ok"
        except (SQLAlchemyError, OSError):
            logger.warning("Database health check failed", exc_info=True)
            checks["database"] = "degraded"
    else:
        checks["database"] = "not_configured"

    return checks


@router.get("/health")
async def health() -> dict:
    checks = await _check_backends()
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    checks = await _check_backends()
    if "degraded" in checks.values():
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
