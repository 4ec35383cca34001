"""Tests for the Discord notification gateway."""

from __future__ import annotations

import json

import httpx
import pytest
from pydantic import SecretStr

from server_rental.connectors.base import ConnectorStatus
from server_rental.services.notification import (
    COLOR_URGENT,
    Notice,
    NotificationGateway,
)

NOTICE = Notice(title="Hello", description="World", fields=[("Server", "abc")])


def _gateway(fake_settings, handler=None, **overrides) -> NotificationGateway:
    settings = fake_settings.model_copy(
        update={
            "discord_bot_token": SecretStr("bot-token"),
            "guild_ids": ["g1", "g2"],
            "panel_role_id": "role-1",
            **overrides,
        }
    )
    transport = httpx.MockTransport(handler) if handler else None
    return NotificationGateway.from_settings(settings, transport=transport)


class TestNotice:
    def test_payload_contains_embed(self):
        notice = Notice(
            title="t",
            description="d",
            fields=[("Name", "value")],
            color=COLOR_URGENT,
            footer="foot",
            content="hi",
        )

        payload = notice.to_payload()

        embed = payload["embeds"][0]
        assert payload["content"] == "hi"
        assert embed["color"] == COLOR_URGENT
        assert embed["fields"] == [{"name": "Name", "value": "value", "inline": True}]
        assert embed["footer"] == {"text": "foot"}

    def test_text_rendering(self):
        assert NOTICE.to_text() == "Hello\nWorld\nServer: abc"


class TestFallback:
    async def test_without_token_logs_and_reports_not_delivered(self, fake_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        gateway = NotificationGateway.from_settings(
            fake_settings, transport=httpx.MockTransport(handler)
        )
        async with gateway:
            assert gateway.enabled is False
            assert await gateway.send_direct("u1", NOTICE) is False
            assert await gateway.send_to_channel("c1", NOTICE) is False
            assert await gateway.add_role("u1") is False
            assert await gateway.health_check() == ConnectorStatus.DEGRADED


class TestDelivery:
    async def test_send_direct_opens_dm_channel(self, fake_settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith("/users/@me/channels"):
                return httpx.Response(200, json={"id": "dm-1"})
            return httpx.Response(200, json={"id": "msg-1"})

        async with _gateway(fake_settings, handler) as gateway:
            assert await gateway.send_direct("u1", NOTICE) is True

        assert json.loads(seen[0].content) == {"recipient_id": "u1"}
        assert seen[0].headers["Authorization"] == "Bot bot-token"
        assert seen[1].url.path.endswith("/channels/dm-1/messages")

    async def test_send_failure_returns_false(self, fake_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"message": "Cannot send messages to this user"})

        async with _gateway(fake_settings, handler) as gateway:
            assert await gateway.send_direct("u1", NOTICE) is False
            assert await gateway.send_to_channel("c1", NOTICE) is False

    async def test_send_to_channel(self, fake_settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "msg-1"})

        async with _gateway(fake_settings, handler) as gateway:
            assert await gateway.send_to_channel("c1", NOTICE) is True

        assert seen[0].url.path.endswith("/channels/c1/messages")
        assert json.loads(seen[0].content)["embeds"][0]["title"] == "Hello"


class TestRoles:
    async def test_role_granted_in_every_guild(self, fake_settings):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(f"{request.method} {request.url.path}")
            return httpx.Response(204)

        async with _gateway(fake_settings, handler) as gateway:
            assert await gateway.add_role("u1") is True

        assert seen == [
            "PUT /api/v10/guilds/g1/members/u1/roles/role-1",
            "PUT /api/v10/guilds/g2/members/u1/roles/role-1",
        ]

    async def test_one_guild_failure_still_tries_the_rest(self, fake_settings):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            if "/guilds/g1/" in request.url.path:
                return httpx.Response(404)
            return httpx.Response(204)

        async with _gateway(fake_settings, handler) as gateway:
            assert await gateway.add_role("u1") is False

        assert len(seen) == 2

    @pytest.mark.parametrize("overrides", [{"panel_role_id": None}, {"guild_ids": []}])
    async def test_role_not_configured(self, fake_settings, overrides):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with _gateway(fake_settings, handler, **overrides) as gateway:
            assert await gateway.add_role("u1") is False
