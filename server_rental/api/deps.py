"""FastAPI dependencies shared by the operator API routers."""

from __future__ import annotations

import hmac

import structlog
from fastapi import Depends, Header, HTTPException, Request, status

from server_rental.config import Settings, get_settings
from server_rental.rental.context import RentalContext
from server_rental.rental.expiry import ExpiryScanner
from server_rental.telemetry.logging import bind_operator_context

log = structlog.get_logger(__name__)


def get_rental_context(request: Request) -> RentalContext:
    """The RentalContext built in the application lifespan."""
    ctx = getattr(request.app.state, "rental_context", None)
    if ctx is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Rental services are not initialized",
        )
    return ctx


def get_scanner(request: Request) -> ExpiryScanner | None:
    return getattr(request.app.state, "expiry_scanner", None)


async def require_operator_key(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Check the X-API-Key header against the configured operator key.

    With no key configured the check is disabled (development only; the
    production settings refuse to start without a key).
    """
    expected = settings.operator_api_key
    if expected is None or not expected.get_secret_value():
        return
    if x_api_key is None or not hmac.compare_digest(
        x_api_key.encode(), expected.get_secret_value().encode()
    ):
        log.warning("api.operator_key_rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    bind_operator_context("operator")
