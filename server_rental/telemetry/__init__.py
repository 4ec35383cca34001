"""Telemetry package for observability.

This package contains:
- Structured logging configuration (structlog)
- Request ID middleware for log correlation
"""

from __future__ import annotations

from server_rental.telemetry.logging import (
    RequestIdMiddleware,
    bind_operator_context,
    clear_context,
    configure_logging,
)

__all__ = [
    "RequestIdMiddleware",
    "bind_operator_context",
    "clear_context",
    "configure_logging",
]
