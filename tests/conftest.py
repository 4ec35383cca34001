"""
Shared test fixtures for pytest.

Provides:
- fake_settings: Test environment configuration (in-memory SQLite)
- store: RentalStore over a fresh in-memory database
- panel, archive, notifier: AsyncMock collaborators
- ctx: RentalContext wired from the above
- make_pending / make_active / make_needs_backup: application builders
- resource / backup: panel payload builders
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from pydantic import SecretStr

from server_rental.config import Environment, Settings, get_settings
from server_rental.connectors.panel import PanelBackup, PanelClient, PanelResource
from server_rental.database import close_db, create_all, get_session_factory, init_db
from server_rental.models import Application, ApplicationStatus
from server_rental.rental.context import RentalContext, RentalSettings
from server_rental.services.archive import ArchiveService
from server_rental.services.notification import NotificationGateway
from server_rental.store import RentalStore
from server_rental.telemetry.logging import clear_context

DAY0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


# ------------------------------------------------------------------ #
# Session-scoped: clear settings cache between test sessions
# ------------------------------------------------------------------ #


@pytest.fixture(autouse=True, scope="session")
def _clear_settings_cache():
    """Clear the lru_cache on get_settings so test overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Context variables bound by one test must not leak into the next."""
    yield
    clear_context()


@pytest.fixture
def fake_settings() -> Settings:
    """Test environment settings with safe defaults."""
    return Settings(
        environment=Environment.TEST,
        database_url="sqlite+aiosqlite:///:memory:",
        panel_api_url="http://panel.test/",
        panel_api_key=SecretStr("ptla_test_key"),
        discord_bot_token=None,
        excluded_discord_users=["excluded-1"],
        reminder_days_before_expiry=[3, 1],
        reminder_channel_id="reminder-channel",
        debug=True,
        db_echo_sql=False,
    )


# ------------------------------------------------------------------ #
# Store and collaborators
# ------------------------------------------------------------------ #


@pytest.fixture
async def store(fake_settings: Settings) -> AsyncGenerator[RentalStore, None]:
    init_db(fake_settings, for_test=True)
    await create_all()
    yield RentalStore(get_session_factory())
    await close_db()


def resource(
    id: int, identifier: str | None = None, *, suspended: bool = False
) -> PanelResource:
    identifier = identifier or f"srv{id:05d}"
    return PanelResource(id=id, identifier=identifier, name=f"Server {id}", suspended=suspended)


def backup(
    id: str,
    created_at: datetime = DAY0,
    *,
    successful: bool = True,
    locked: bool = False,
) -> PanelBackup:
    return PanelBackup(
        id=id,
        name=f"backup {id}",
        created_at=created_at,
        bytes=1024 * 1024,
        is_successful=successful,
        is_locked=locked,
    )


@pytest.fixture
def panel() -> AsyncMock:
    mock = AsyncMock(spec=PanelClient)
    mock.list_resources.return_value = [resource(1), resource(2)]
    mock.list_backups.return_value = []
    mock.create_user.side_effect = [101, 102, 103, 104, 105]
    return mock


@pytest.fixture
def archive() -> AsyncMock:
    return AsyncMock(spec=ArchiveService)


@pytest.fixture
def notifier() -> AsyncMock:
    mock = AsyncMock(spec=NotificationGateway)
    mock.send_direct.return_value = True
    mock.send_to_channel.return_value = True
    mock.add_role.return_value = True
    return mock


@pytest.fixture
def rental_settings(fake_settings: Settings) -> RentalSettings:
    return RentalSettings.from_settings(fake_settings)


@pytest.fixture
def ctx(
    store: RentalStore,
    panel: AsyncMock,
    archive: AsyncMock,
    notifier: AsyncMock,
    rental_settings: RentalSettings,
) -> RentalContext:
    return RentalContext(
        store=store,
        panel=panel,
        archive=archive,
        notifier=notifier,
        settings=rental_settings,
    )


# ------------------------------------------------------------------ #
# Application builders
# ------------------------------------------------------------------ #


async def make_pending(
    store: RentalStore,
    *,
    grantees: Sequence[str] = ("grantee-1", "grantee-2"),
    period_days: int = 14,
    organizer_id: str = "organizer-1234",
    description: str = "Summer event",
) -> Application:
    return await store.create_application(
        applicant_id="applicant-1",
        organizer_id=organizer_id,
        description=description,
        requested_version="1.20.4",
        requested_period_days=period_days,
        grantee_ids=list(grantees),
    )


async def provision(store: RentalStore, application: Application, first_id: int = 500) -> None:
    """Give every grantee of ``application`` a panel account."""
    for offset, grantee in enumerate(application.grantees):
        await store.set_panel_identity(grantee.id, f"user{offset}", f"user{offset}@kpw.local")
        await store.set_external_user_id(grantee.id, first_id + offset)


async def make_active(
    store: RentalStore,
    resource_identifier: str,
    *,
    start: datetime = DAY0,
    period_days: int = 14,
    grantees: Sequence[str] = ("grantee-1", "grantee-2"),
    organizer_id: str = "organizer-1234",
) -> Application:
    application = await make_pending(
        store, grantees=grantees, period_days=period_days, organizer_id=organizer_id
    )
    await provision(store, application)
    return await store.activate(application.id, resource_identifier, start)


async def make_needs_backup(
    store: RentalStore,
    resource_identifier: str,
    *,
    grantees: Sequence[str] = ("grantee-1", "grantee-2"),
) -> Application:
    application = await make_active(store, resource_identifier, grantees=grantees)
    return await store.transition(application.id, ApplicationStatus.NEEDS_BACKUP)


def ending_at(end: datetime, period_days: int) -> datetime:
    """Activation time that makes a ``period_days`` rental end at ``end``."""
    return end - timedelta(days=period_days)
