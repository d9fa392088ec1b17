"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured we create a client
backed by a connection pool; when it is None (local dev, tests) the
recompute locks fall back to in-process locks and no Redis server is
needed.

Redis only carries the per-enrollment recompute lock, so that several
API processes never recompute the same enrollment concurrently.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import redis

from pathway_progress.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_client: redis.Redis | None = redis.Redis.from_url(
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_client = None


@contextmanager
def lifespan_redis() -> Iterator[None]:
    """Startup/shutdown hook for Redis, mirrors lifespan_db()."""
    if redis_client is None:
        logger.info("No REDIS_URL configured, recompute locks are in-process")
        yield
        return

    try:
        redis_client.ping()
        logger.info("Redis connected")
    except redis.RedisError:
        # Keep serving; lock acquisition will surface the outage per request
        logger.exception("Redis connection failed on startup")

    yield

    redis_client.close()
    logger.info("Redis connection pool closed")
