"""FastAPI application entrypoint.

Application startup order:
1. Load settings (from environment)
2. Configure structured logging
3. Initialize database engine and session factory
4. Open the panel client and the notification gateway
5. Build the RentalContext and start the expiry scanner
6. Register middleware and include all routers

Shutdown order:
1. Stop the expiry scanner
2. Close the HTTP connectors
3. Close the DB connection pool
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from server_rental.api.errors import register_error_handlers
from server_rental.api.router import api_v1_router, public_router
from server_rental.config import get_settings
from server_rental.connectors.panel import PanelClient
from server_rental.database import close_db, get_session_factory, init_db
from server_rental.rental.context import RentalContext, RentalSettings
from server_rental.rental.expiry import ExpiryScanner
from server_rental.services.archive import ArchiveService
from server_rental.services.notification import NotificationGateway
from server_rental.store import RentalStore
from server_rental.telemetry.logging import RequestIdMiddleware, configure_logging

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    settings = get_settings()

    # Configure structured logging first (before any log calls)
    configure_logging(
        json_logs=settings.is_prod,
        log_level="DEBUG" if settings.debug else "INFO",
    )

    log.info(
        "app.starting",
        environment=settings.environment,
        db_url=settings.database_url.split("@")[-1],
        panel_url=settings.panel_api_url,
    )

    init_db(settings)

    panel = PanelClient.from_settings(settings)
    notifier = NotificationGateway.from_settings(settings)
    await panel.open()
    await notifier.open()
    if not notifier.enabled:
        log.warning("app.notifications_disabled", reason="no discord bot token")

    ctx = RentalContext(
        store=RentalStore(get_session_factory()),
        panel=panel,
        archive=ArchiveService.from_settings(settings),
        notifier=notifier,
        settings=RentalSettings.from_settings(settings),
    )
    scanner = ExpiryScanner(ctx, interval_minutes=settings.reminder_interval_minutes)

    app.state.rental_context = ctx
    app.state.expiry_scanner = scanner

    await panel.health_check()
    await scanner.start()

    log.info("app.ready")
    yield

    await scanner.stop()
    await notifier.close()
    await panel.close()
    await close_db()
    log.info("app.shutdown")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    app = FastAPI(
        title="Server Rental Orchestrator",
        description=(
            "Operator API for time-bounded game server rentals: approval, "
            "assignment, expiry and backup-before-reclaim returns."
        ),
        version="0.1.0",
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
        openapi_url="/openapi.json" if settings.is_dev else None,
        lifespan=lifespan,
    )

    app.add_middleware(RequestIdMiddleware)

    app.include_router(public_router)
    app.include_router(api_v1_router)

    register_error_handlers(app)

    return app


# Module-level app instance for uvicorn
app = create_app()
