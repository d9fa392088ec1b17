"""Domain exception -> HTTP response mapping."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from pathway_progress.core.errors import (
    ConfigurationError,
    NotFoundError,
    SignalValidationError,
    StateConflictError,
)

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found_handler(_request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)}
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        logger.warning("Configuration rejected on %s: %s", request.url.path, exc)
        content: dict = {"detail": str(exc)}
        if exc.cycle:
            content["cycle"] = [str(a) for a in exc.cycle]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=content
        )

    @app.exception_handler(SignalValidationError)
    async def signal_validation_handler(
        _request: Request, exc: SignalValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)}
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(_request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)}
        )

    @app.exception_handler(StateConflictError)
    async def conflict_handler(_request: Request, exc: StateConflictError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(exc), "reason": exc.reason},
        )

    @app.exception_handler(TimeoutError)
    async def lock_timeout_handler(request: Request, exc: TimeoutError) -> JSONResponse:
        logger.error("Recompute lock timeout on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "enrollment is busy, retry later"},
        )
