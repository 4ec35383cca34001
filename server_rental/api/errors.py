"""Mapping of rental errors onto HTTP responses."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from server_rental.rental.errors import (
    AlreadyAssigned,
    Capacity,
    ExternalFailure,
    InvalidTransition,
    NotFound,
    RentalError,
    ValidationError,
)

log = structlog.get_logger(__name__)


def status_for(exc: RentalError) -> int:
    if isinstance(exc, ValidationError):
        return 422  # Unprocessable Content
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (InvalidTransition, AlreadyAssigned)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, Capacity):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, ExternalFailure):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RentalError)
    async def rental_error_handler(request: Request, exc: RentalError) -> JSONResponse:
        code = status_for(exc)
        log.warning(
            "api.rental_error",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=str(exc),
            status=code,
        )
        return JSONResponse(
            status_code=code,
            content={"detail": str(exc), "error": type(exc).__name__},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error(
            "app.unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
