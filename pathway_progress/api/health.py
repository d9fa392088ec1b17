"""Health and readiness endpoints.

  /health (liveness):  the process answers; dependency status is
                       reported but never turns the response into an error.
  /ready  (readiness): 503 while a configured database is unreachable.
                       Redis is not critical: without it only the
                       cross-process recompute lock is unavailable.
"""

from __future__ import annotations

import logging

import redis
from fastapi import APIRouter, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pathway_progress.db import engine as db
from pathway_progress.db.redis import redis_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _check_database() -> str:
    if db.engine is None:
        return "not_configured"
    try:
        with db.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok"
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)
        return "degraded"


def _check_redis() -> str:
    if redis_client is None:
        return "not_configured"
    try:
        redis_client.ping()
        return "ok"
    except redis.RedisError:
        logger.warning("Redis health check failed", exc_info=True)
        return "degraded"


@router.get("/health")
def health() -> dict:
    checks = {"database": _check_database(), "redis": _check_redis()}
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
def ready() -> Response:
    if _check_database() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
