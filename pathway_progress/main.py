from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pathway_progress.api.curriculum import router as curriculum_router
from pathway_progress.api.errors import register_exception_handlers
from pathway_progress.api.health import router as health_router
from pathway_progress.api.metrics_endpoint import router as metrics_router
from pathway_progress.api.overrides import router as overrides_router
from pathway_progress.api.progress import router as progress_router
from pathway_progress.core.config import SETTINGS
from pathway_progress.core.logging import setup_logging
from pathway_progress.db.engine import lifespan_db
from pathway_progress.db.redis import lifespan_redis
from pathway_progress.middleware.metrics import MetricsMiddleware
from pathway_progress.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order
    with lifespan_db():
        with lifespan_redis():
            yield


app = FastAPI(
    title="pathway-progress-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) -> Metrics -> route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

register_exception_handlers(app)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(curriculum_router)
app.include_router(progress_router)
app.include_router(overrides_router)

logger.info(
    "pathway-progress-service started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
