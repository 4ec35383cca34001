"""Notification gateway - Discord direct messages, channel posts and roles.

Sends notifications when:
- A resource has been assigned (organizer and grantees)
- A rental is about to expire (organizer, mirrored to the reminder channel)
- Rentals have expired (summary to the reminder channel)
- A resource has been reclaimed (organizer and grantees)

and grants the panel role to grantees in every configured guild.

Transport is the Discord REST API via httpx with a bot token. When no token
is configured each message is written as a structured log entry instead, so
the event is never silently lost.

All public methods are best-effort: failures are logged and reported as a
False return value, never raised, so a rental workflow is never blocked by
an undeliverable message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
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

log = structlog.get_logger(__name__)

COLOR_INFO = 0x00AE86
COLOR_WARNING = 0xFFAA00
COLOR_URGENT = 0xFF4444


class NotificationError(ConnectorError):
    """A Discord API request failed."""


@dataclass
class Notice:
    """A message rendered as one Discord embed (plus optional plain content)."""

    title: str
    description: str
    fields: list[tuple[str, str]] = field(default_factory=list)
    color: int = COLOR_INFO
    footer: str | None = None
    content: str | None = None

    def to_payload(self) -> dict[str, Any]:
        embed: dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "color": self.color,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        if self.fields:
            embed["fields"] = [
                {"name": name, "value": value[:1024] or "-", "inline": len(value) <= 40}
                for name, value in self.fields[:25]
            ]
        if self.footer:
            embed["footer"] = {"text": self.footer}
        payload: dict[str, Any] = {"embeds": [embed]}
        if self.content:
            payload["content"] = self.content
        return payload

    def to_text(self) -> str:
        lines = [self.title, self.description]
        lines.extend(f"{name}: {value}" for name, value in self.fields)
        if self.footer:
            lines.append(self.footer)
        return "\n".join(lines)


class NotificationGateway(BaseConnector):
    """Best-effort Discord delivery.

    Instantiate with explicit values (useful for testing), or call
    ``NotificationGateway.from_settings()`` to read from the app config.
    """

    error_class = NotificationError

    def __init__(
        self,
        config: ConnectorConfig,
        *,
        guild_ids: list[str] | None = None,
        panel_role_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(config, transport=transport)
        self.guild_ids = list(guild_ids or [])
        self.panel_role_id = panel_role_id

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> NotificationGateway:
        cfg = settings or get_settings()
        token = cfg.discord_bot_token.get_secret_value() if cfg.discord_bot_token else ""
        config = ConnectorConfig(
            name="discord",
            endpoint=cfg.discord_api_url,
            auth_type=AuthType.BOT,
            timeout_seconds=10.0,
            auth_params={"token": token},
        )
        return cls(
            config,
            guild_ids=cfg.guild_ids,
            panel_role_id=cfg.panel_role_id,
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.config.auth_params.get("token"))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send_direct(self, user_id: str, message: Notice) -> bool:
        """Send ``message`` as a direct message to ``user_id``."""
        if not self.enabled:
            return self._log_fallback("direct", user_id, message)
        try:
            channel = await self._request(
                "POST", "/users/@me/channels", json={"recipient_id": user_id}
            )
            await self._request(
                "POST", f"/channels/{channel['id']}/messages", json=message.to_payload()
            )
        except Exception as exc:
            log.warning("notification.direct_failed", user_id=user_id, error=str(exc))
            return False
        log.info("notification.direct_sent", user_id=user_id, title=message.title)
        return True

    async def send_to_channel(self, channel_id: str, message: Notice) -> bool:
        """Post ``message`` to a guild text channel."""
        if not self.enabled:
            return self._log_fallback("channel", channel_id, message)
        try:
            await self._request(
                "POST", f"/channels/{channel_id}/messages", json=message.to_payload()
            )
        except Exception as exc:
            log.warning("notification.channel_failed", channel_id=channel_id, error=str(exc))
            return False
        log.info("notification.channel_sent", channel_id=channel_id, title=message.title)
        return True

    async def add_role(self, user_id: str) -> bool:
        """Grant the panel role to ``user_id`` in every configured guild.

        Returns True only when the role was granted in all guilds; a guild
        failure is logged and the remaining guilds are still attempted.
        """
        if not self.enabled or not self.panel_role_id or not self.guild_ids:
            log.debug("notification.role_skipped", reason="role_not_configured")
            return False

        granted = True
        for guild_id in self.guild_ids:
            try:
                await self._request(
                    "PUT",
                    f"/guilds/{guild_id}/members/{user_id}/roles/{self.panel_role_id}",
                )
                log.info("notification.role_granted", guild_id=guild_id, user_id=user_id)
            except Exception as exc:
                granted = False
                log.warning(
                    "notification.role_failed",
                    guild_id=guild_id,
                    user_id=user_id,
                    error=str(exc),
                )
        return granted

    async def health_check(self) -> ConnectorStatus:
        if not self.enabled:
            self._status = ConnectorStatus.DEGRADED
            return self._status
        try:
            await self._request("GET", "/users/@me")
            self._status = ConnectorStatus.HEALTHY
        except NotificationError as exc:
            self._status = ConnectorStatus.UNAVAILABLE
            log.warning("notification.health_check_failed", error=str(exc))
        return self._status

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log_fallback(self, kind: str, target: str, message: Notice) -> bool:
        # No bot token: keep the message in the logs so it is not lost.
        log.info(
            "notification.fallback",
            kind=kind,
            target=target,
            title=message.title,
            body=message.to_text(),
        )
        return False
