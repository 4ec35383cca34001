"""Health check endpoint.

/health - Liveness plus database and panel reachability.

Public endpoint - no API key required.
"""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from sqlalchemy import text

from server_rental.database import get_engine

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict:
    """Always 200 while the process is up; reports dependency status."""
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception as exc:
        db_status = f"error: {exc}"

    ctx = getattr(request.app.state, "rental_context", None)
    panel_status = ctx.panel.status if ctx is not None else "unknown"

    return {
        "status": "ok",
        "database": db_status,
        "panel": str(panel_status),
        "timestamp": datetime.now(UTC).isoformat(),
    }
