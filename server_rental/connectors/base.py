"""Base connector infrastructure for external HTTP APIs.

The panel client and the Discord gateway both inherit from BaseConnector
and follow these patterns:
1. Async context manager owns one pooled httpx.AsyncClient
2. Authentication headers derived from ConnectorConfig
3. Configuration validation - fail fast on misconfiguration
4. Every non-2xx response, transport error or undecodable body is raised
   as the connector's error class, so callers deal with one exception type
5. Structured logging of every request outcome
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx
import structlog

log = structlog.get_logger(__name__)


class AuthType(StrEnum):
    """Authentication methods supported by connectors."""

    NONE = "none"
    BEARER = "bearer"
    BOT = "bot"


class ConnectorStatus(StrEnum):
    """Health status for connector endpoints."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass
class ConnectorConfig:
    """Configuration for an external API connector."""

    name: str
    endpoint: str
    auth_type: AuthType = AuthType.NONE
    timeout_seconds: float = 30.0
    # Token for BEARER / BOT auth
    auth_params: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate configuration and raise ValueError if invalid."""
        if not self.name:
            raise ValueError("Connector name cannot be empty")
        if not self.endpoint:
            raise ValueError("Connector endpoint cannot be empty")
        if self.timeout_seconds <= 0:
            raise ValueError("Timeout must be positive")


class ConnectorError(Exception):
    """Raised when a connector request fails.

    Attributes:
        status_code: HTTP status of the failed response, or None for
            transport errors and malformed payloads.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BaseConnector(ABC):
    """Abstract base class for HTTP connectors.

    Subclasses must implement:
    - health_check(): Verify connectivity to the external system

    Subclasses may override ``error_class`` so that request failures surface
    as a domain-specific exception.

    Usage::

        async with PanelClient(config) as panel:
            resources = await panel.list_resources()
    """

    error_class: type[ConnectorError] = ConnectorError

    def __init__(
        self,
        config: ConnectorConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        config.validate()
        self.config = config
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None
        self._status = ConnectorStatus.UNKNOWN

    async def __aenter__(self) -> BaseConnector:
        """Async context manager entry - initialize HTTP client."""
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit - cleanup HTTP client."""
        await self.close()

    async def open(self) -> None:
        """Create the pooled HTTP client (idempotent)."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.endpoint,
                timeout=self.config.timeout_seconds,
                headers=self._prepare_auth_headers(),
                limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get the HTTP client, raising if not initialized."""
        if self._http_client is None:
            raise RuntimeError(
                f"{self.config.name} connector not initialized. Use 'async with connector:'"
            )
        return self._http_client

    def _prepare_auth_headers(self) -> dict[str, str]:
        """Prepare authentication headers based on auth_type."""
        headers: dict[str, str] = {"Accept": "application/json"}
        token = self.config.auth_params.get("token", "")

        if self.config.auth_type == AuthType.BEARER and token:
            headers["Authorization"] = f"Bearer {token}"
        elif self.config.auth_type == AuthType.BOT and token:
            headers["Authorization"] = f"Bot {token}"

        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Returns None for empty bodies (e.g. 204 No Content).

        Raises:
            error_class: on transport errors, non-2xx responses or a body
                that is not valid JSON.
        """
        client = self._get_http_client()
        try:
            response = await client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            log.error(
                "connector.request_failed",
                connector=self.config.name,
                method=method,
                path=path,
                error=str(exc),
            )
            raise self.error_class(
                f"{self.config.name} request failed: {method} {path}: {exc}"
            ) from exc

        if response.is_error:
            log.error(
                "connector.request_rejected",
                connector=self.config.name,
                method=method,
                path=path,
                status=response.status_code,
                response=response.text[:200],
            )
            raise self.error_class(
                f"{self.config.name} API error: {response.status_code} "
                f"{response.reason_phrase} ({method} {path})",
                status_code=response.status_code,
            )

        log.debug(
            "connector.request_ok",
            connector=self.config.name,
            method=method,
            path=path,
            status=response.status_code,
        )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise self.error_class(
                f"{self.config.name} returned a non-JSON body for {method} {path}"
            ) from exc

    @abstractmethod
    async def health_check(self) -> ConnectorStatus:
        """Check if the external system is reachable and responsive."""

    @property
    def status(self) -> ConnectorStatus:
        """Current health status of this connector."""
        return self._status
