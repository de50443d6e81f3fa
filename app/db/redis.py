"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured we create a connection
pool at import time; when it is None (tests, local dev) redis_pool is
None and every consumer falls back to its in-memory implementation.

The enrollment service keeps three things in Redis, each under its own
key prefix:
  waitlist:{course_id}      JSON list of waitlist entries
  lock:course:{course_id}   per-course distributed lock
  tasks:{queue}             notification task lists
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,  # str, not bytes: waitlist JSON and keys
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis; mirrors lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured, waitlists and locks are in-process")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected")
    except RedisError:
        # Start anyway; /ready reports the outage and store calls fail
        # with REPOSITORY_FAILURE until Redis is back.
        logger.exception("Redis connection failed on startup")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
