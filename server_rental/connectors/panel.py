"""Resource panel connector - Pterodactyl application API.

Provides the capability set the rental core needs from the control plane:
- list resources (servers) and their backups
- lock / unlock backups, reinstall a resource
- create / delete panel users
- grant / revoke a user's access to a resource

Every payload crossing this boundary is parsed into the frozen dataclasses
below straight away. A malformed payload raises PanelError just like a
failed request, so orchestration code never sees untyped data.

Reference deployment: Pterodactyl Panel 1.x, application API key.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from server_rental.config import Settings, get_settings
from server_rental.connectors.base import (
    AuthType,
    BaseConnector,
    ConnectorConfig,
    ConnectorError,
    ConnectorStatus,
)
from server_rental.rental.errors import ExternalFailure

log = structlog.get_logger(__name__)

API_PREFIX = "/api/application"

_PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*"


class PanelError(ConnectorError, ExternalFailure):
    """A panel request failed or returned a malformed payload."""


@dataclass(frozen=True)
class PanelResource:
    """A rentable server on the panel."""

    id: int
    identifier: str
    name: str
    suspended: bool


@dataclass(frozen=True)
class PanelBackup:
    """A backup snapshot of a panel resource."""

    id: str
    name: str
    created_at: datetime
    bytes: int
    is_successful: bool
    is_locked: bool

    @property
    def size_mb(self) -> float:
        return self.bytes / (1024 * 1024)


def _attributes(item: Any) -> dict[str, Any]:
    if not isinstance(item, dict) or not isinstance(item.get("attributes"), dict):
        raise PanelError("Panel payload item has no 'attributes' object")
    return item["attributes"]


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"expected ISO timestamp, got {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_resource(item: Any) -> PanelResource:
    """Parse one ``{"object": "server", "attributes": {...}}`` entry."""
    attrs = _attributes(item)
    try:
        return PanelResource(
            id=int(attrs["id"]),
            identifier=str(attrs["identifier"]),
            name=str(attrs.get("name") or attrs["identifier"]),
            suspended=bool(attrs.get("suspended", False)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise PanelError(f"Malformed server payload: {exc}") from exc


def parse_backup(item: Any) -> PanelBackup:
    """Parse one ``{"object": "backup", "attributes": {...}}`` entry."""
    attrs = _attributes(item)
    try:
        return PanelBackup(
            id=str(attrs["uuid"]),
            name=str(attrs.get("name") or ""),
            created_at=_parse_timestamp(attrs["created_at"]),
            bytes=int(attrs.get("bytes") or 0),
            is_successful=bool(attrs.get("is_successful", False)),
            is_locked=bool(attrs.get("is_locked", False)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise PanelError(f"Malformed backup payload: {exc}") from exc


def _data_items(payload: Any) -> list[Any]:
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        raise PanelError("Panel list payload has no 'data' array")
    return payload["data"]


def _total_pages(payload: dict[str, Any]) -> int:
    """Page count from ``meta.pagination``; a payload without it is one page."""
    meta = payload.get("meta")
    if meta is None:
        return 1
    if not isinstance(meta, dict):
        raise PanelError("Panel list payload has a malformed 'meta' object")
    pagination = meta.get("pagination")
    if pagination is None:
        return 1
    if not isinstance(pagination, dict):
        raise PanelError("Panel list payload has a malformed 'pagination' object")
    total_pages = pagination.get("total_pages", 1)
    if isinstance(total_pages, bool) or not isinstance(total_pages, int):
        raise PanelError(f"Panel returned a non-integer page count: {total_pages!r}")
    return total_pages


def generate_password(length: int = 16) -> str:
    """Random initial password for new panel accounts."""
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))


class PanelClient(BaseConnector):
    """Pterodactyl application API client.

    Configuration:
        - endpoint: panel base URL (``/api/application`` is appended per call)
        - auth_type: BEARER
        - auth_params: {"token": <application API key>}
    """

    error_class = PanelError

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> PanelClient:
        cfg = settings or get_settings()
        config = ConnectorConfig(
            name="panel",
            endpoint=cfg.panel_api_url,
            auth_type=AuthType.BEARER,
            timeout_seconds=cfg.panel_timeout_seconds,
            auth_params={"token": cfg.panel_api_key.get_secret_value()},
        )
        return cls(config, transport=transport)

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    async def list_resources(self) -> list[PanelResource]:
        """Return every server on the panel in panel order (all pages)."""
        resources: list[PanelResource] = []
        page = 1
        while True:
            payload = await self._request("GET", f"{API_PREFIX}/servers", params={"page": page})
            resources.extend(parse_resource(item) for item in _data_items(payload))
            if page >= _total_pages(payload):
                break
            page += 1
        log.debug("panel.resources_listed", count=len(resources))
        return resources

    async def reinstall_resource(self, resource_id: int) -> None:
        await self._request("POST", f"{API_PREFIX}/servers/{resource_id}/reinstall")
        log.info("panel.resource_reinstalled", resource_id=resource_id)

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    async def list_backups(self, resource_id: int) -> list[PanelBackup]:
        payload = await self._request("GET", f"{API_PREFIX}/servers/{resource_id}/backups")
        return [parse_backup(item) for item in _data_items(payload)]

    async def lock_backup(self, resource_id: int, backup_id: str) -> None:
        await self._set_backup_lock(resource_id, backup_id, locked=True)

    async def unlock_backup(self, resource_id: int, backup_id: str) -> None:
        await self._set_backup_lock(resource_id, backup_id, locked=False)

    async def _set_backup_lock(self, resource_id: int, backup_id: str, *, locked: bool) -> None:
        await self._request(
            "PATCH",
            f"{API_PREFIX}/servers/{resource_id}/backups/{backup_id}",
            json={"is_locked": locked},
        )
        log.info(
            "panel.backup_lock_changed",
            resource_id=resource_id,
            backup_id=backup_id,
            locked=locked,
        )

    # ------------------------------------------------------------------
    # Users and access
    # ------------------------------------------------------------------

    async def create_user(self, username: str, email: str) -> int:
        """Create a panel account and return its panel user id."""
        payload = await self._request(
            "POST",
            f"{API_PREFIX}/users",
            json={
                "username": username,
                "email": email,
                "first_name": username,
                "last_name": "-",
                "password": generate_password(),
            },
        )
        try:
            user_id = int(_attributes(payload)["id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise PanelError(f"Malformed user payload: {exc}") from exc
        log.info("panel.user_created", username=username, external_user_id=user_id)
        return user_id

    async def delete_user(self, external_user_id: int) -> None:
        await self._request("DELETE", f"{API_PREFIX}/users/{external_user_id}")
        log.info("panel.user_deleted", external_user_id=external_user_id)

    async def grant_access(
        self,
        resource_id: int,
        external_user_id: int,
        permissions: list[str] | None = None,
    ) -> None:
        await self._request(
            "POST",
            f"{API_PREFIX}/servers/{resource_id}/users",
            json={"user": external_user_id, "permissions": permissions or ["*"]},
        )
        log.info(
            "panel.access_granted",
            resource_id=resource_id,
            external_user_id=external_user_id,
        )

    async def revoke_access(self, resource_id: int, external_user_id: int) -> None:
        await self._request(
            "DELETE", f"{API_PREFIX}/servers/{resource_id}/users/{external_user_id}"
        )
        log.info(
            "panel.access_revoked",
            resource_id=resource_id,
            external_user_id=external_user_id,
        )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> ConnectorStatus:
        """Check panel availability with a one-item server listing."""
        try:
            await self._request("GET", f"{API_PREFIX}/servers", params={"per_page": 1})
            self._status = ConnectorStatus.HEALTHY
        except PanelError as exc:
            if exc.status_code is not None and exc.status_code < 500:
                self._status = ConnectorStatus.DEGRADED
            else:
                self._status = ConnectorStatus.UNAVAILABLE
            log.warning("panel.health_check_failed", error=str(exc))
        return self._status
