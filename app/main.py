from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.analytics import router as analytics_router
from app.api.enrollments import router as enrollments_router
from app.api.errors import EnrollmentApiError, enrollment_error_handler
from app.api.health import router as health_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.waitlists import router as waitlists_router
from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.db.engine import lifespan_db
from app.db.redis import lifespan_redis
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so Redis is torn down before the database engine.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="enrollment-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_exception_handler(EnrollmentApiError, enrollment_error_handler)  # type: ignore[arg-type]

# Last added runs first: RequestContext -> Metrics -> route handler,
# so the request id is set before anything is recorded.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(enrollments_router)
app.include_router(waitlists_router)
app.include_router(analytics_router)

logger.info(
    "enrollment-service started  env=%s log_level=%s port=%d policy=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    SETTINGS.waitlist_policy,
    "on" if SETTINGS.is_dev else "off",
)
