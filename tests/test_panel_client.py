"""Tests for the Pterodactyl panel client using httpx.MockTransport."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx
import pytest

from server_rental.connectors.base import ConnectorStatus
from server_rental.connectors.panel import (
    PanelClient,
    PanelError,
    parse_backup,
    parse_resource,
)
from server_rental.rental.errors import ExternalFailure


def _server(id: int, identifier: str, *, suspended: bool = False) -> dict:
    return {
        "object": "server",
        "attributes": {
            "id": id,
            "identifier": identifier,
            "name": f"Server {id}",
            "suspended": suspended,
        },
    }


def _backup(uuid: str, created_at: str, *, locked: bool = False, ok: bool = True) -> dict:
    return {
        "object": "backup",
        "attributes": {
            "uuid": uuid,
            "name": f"Backup {uuid}",
            "created_at": created_at,
            "bytes": 2 * 1024 * 1024,
            "is_successful": ok,
            "is_locked": locked,
        },
    }


def _client(handler, fake_settings) -> PanelClient:
    return PanelClient.from_settings(fake_settings, transport=httpx.MockTransport(handler))


class TestParsing:
    def test_parse_resource(self):
        resource = parse_resource(_server(7, "abcd1234", suspended=True))
        assert resource.id == 7
        assert resource.identifier == "abcd1234"
        assert resource.suspended is True

    def test_parse_backup(self):
        backup = parse_backup(_backup("uuid-1", "2026-03-01T10:00:00+00:00", locked=True))
        assert backup.id == "uuid-1"
        assert backup.created_at == datetime(2026, 3, 1, 10, 0, tzinfo=UTC)
        assert backup.is_locked is True
        assert backup.size_mb == 2.0

    def test_parse_backup_zulu_timestamp(self):
        backup = parse_backup(_backup("uuid-1", "2026-03-01T10:00:00Z"))
        assert backup.created_at.tzinfo is not None

    @pytest.mark.parametrize(
        "payload",
        [
            {"object": "server"},
            {"attributes": {"identifier": "x"}},
            {"attributes": {"id": "not-a-number", "identifier": "x"}},
            "garbage",
        ],
    )
    def test_malformed_resource_raises_panel_error(self, payload):
        with pytest.raises(PanelError):
            parse_resource(payload)

    def test_malformed_backup_timestamp(self):
        with pytest.raises(PanelError):
            parse_backup(_backup("uuid-1", "yesterday"))

    def test_panel_error_is_external_failure(self):
        assert issubclass(PanelError, ExternalFailure)


class TestRequests:
    async def test_list_resources_follows_pagination(self, fake_settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            page = int(request.url.params["page"])
            data = [_server(1, "aaaa0001")] if page == 1 else [_server(2, "aaaa0002")]
            return httpx.Response(
                200,
                json={"data": data, "meta": {"pagination": {"total_pages": 2}}},
            )

        async with _client(handler, fake_settings) as panel:
            resources = await panel.list_resources()

        assert [r.identifier for r in resources] == ["aaaa0001", "aaaa0002"]
        assert seen[0].url.path == "/api/application/servers"
        assert seen[0].headers["Authorization"] == "Bearer ptla_test_key"

    @pytest.mark.parametrize(
        "meta",
        [
            "x",
            {"pagination": "bogus"},
            {"pagination": {"total_pages": "many"}},
            {"pagination": {"total_pages": None}},
        ],
    )
    async def test_malformed_pagination_raises_panel_error(self, fake_settings, meta):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": [], "meta": meta})

        async with _client(handler, fake_settings) as panel:
            with pytest.raises(PanelError):
                await panel.list_resources()

    async def test_missing_pagination_is_a_single_page(self, fake_settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": [_server(1, "aaaa0001")]})

        async with _client(handler, fake_settings) as panel:
            resources = await panel.list_resources()

        assert [r.identifier for r in resources] == ["aaaa0001"]
        assert len(seen) == 1

    async def test_list_backups(self, fake_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/application/servers/5/backups"
            return httpx.Response(
                200, json={"data": [_backup("u1", "2026-03-01T00:00:00+00:00")]}
            )

        async with _client(handler, fake_settings) as panel:
            backups = await panel.list_backups(5)

        assert [b.id for b in backups] == ["u1"]

    async def test_unlock_backup_sends_patch(self, fake_settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        async with _client(handler, fake_settings) as panel:
            await panel.unlock_backup(5, "u1")

        assert seen[0].method == "PATCH"
        assert seen[0].url.path == "/api/application/servers/5/backups/u1"
        assert json.loads(seen[0].content) == {"is_locked": False}

    async def test_lock_backup(self, fake_settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        async with _client(handler, fake_settings) as panel:
            await panel.lock_backup(5, "u1")

        assert json.loads(seen[0].content) == {"is_locked": True}

    async def test_delete_user(self, fake_settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        async with _client(handler, fake_settings) as panel:
            await panel.delete_user(42)

        assert (seen[0].method, seen[0].url.path) == ("DELETE", "/api/application/users/42")

    async def test_malformed_user_payload(self, fake_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(201, json={"object": "user", "attributes": {}})

        async with _client(handler, fake_settings) as panel:
            with pytest.raises(PanelError):
                await panel.create_user("alice", "alice@kpw.local")

    async def test_create_user_returns_id(self, fake_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["username"] == "alice"
            assert body["email"] == "alice@kpw.local"
            assert len(body["password"]) == 16
            return httpx.Response(201, json={"object": "user", "attributes": {"id": 42}})

        async with _client(handler, fake_settings) as panel:
            assert await panel.create_user("alice", "alice@kpw.local") == 42

    async def test_grant_and_revoke_access(self, fake_settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        async with _client(handler, fake_settings) as panel:
            await panel.grant_access(5, 42)
            await panel.revoke_access(5, 42)

        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == {"user": 42, "permissions": ["*"]}
        assert seen[1].method == "DELETE"
        assert seen[1].url.path == "/api/application/servers/5/users/42"

    async def test_error_status_raises_panel_error(self, fake_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        async with _client(handler, fake_settings) as panel:
            with pytest.raises(PanelError) as exc_info:
                await panel.reinstall_resource(5)

        assert exc_info.value.status_code == 500

    async def test_transport_error_raises_panel_error(self, fake_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler, fake_settings) as panel:
            with pytest.raises(PanelError):
                await panel.list_resources()

    async def test_non_json_body_raises_panel_error(self, fake_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        async with _client(handler, fake_settings) as panel:
            with pytest.raises(PanelError):
                await panel.list_backups(5)

    async def test_missing_data_array_raises_panel_error(self, fake_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"errors": []})

        async with _client(handler, fake_settings) as panel:
            with pytest.raises(PanelError):
                await panel.list_backups(5)

    async def test_requires_open_client(self, fake_settings):
        panel = _client(lambda request: httpx.Response(200), fake_settings)
        with pytest.raises(RuntimeError):
            await panel.list_resources()


class TestHealth:
    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            (200, ConnectorStatus.HEALTHY),
            (403, ConnectorStatus.DEGRADED),
            (503, ConnectorStatus.UNAVAILABLE),
        ],
    )
    async def test_health_check(self, fake_settings, code, expected):
        def handler(request: httpx.Request) -> httpx.Response:
            if code == 200:
                return httpx.Response(200, json={"data": []})
            return httpx.Response(code)

        async with _client(handler, fake_settings) as panel:
            assert await panel.health_check() == expected
            assert panel.status == expected
