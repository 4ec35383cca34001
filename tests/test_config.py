"""Tests for settings loading and validation."""

from __future__ import annotations

import pytest
from pydantic import SecretStr
from pydantic import ValidationError as PydanticValidationError

from server_rental.config import Environment, Settings
from server_rental.rental.context import RentalSettings


def _prod(**overrides) -> Settings:
    values = {
        "environment": Environment.PROD,
        "database_url": "postgresql+asyncpg://rental:Str0ng@db:5432/server_rental",
        "panel_api_key": SecretStr("ptla_real"),
        "operator_api_key": SecretStr("operator-key"),
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.reminder_days_before_expiry == [3, 1]
    assert settings.reminder_interval_minutes == 60
    assert settings.archive_base_path == "ServerBackups"


def test_dev_forces_debug():
    assert Settings(_env_file=None, environment=Environment.DEV).debug is True


def test_trailing_slash_is_stripped():
    settings = Settings(_env_file=None, panel_api_url="https://panel.example.com/")
    assert settings.panel_api_url == "https://panel.example.com"


def test_negative_reminder_offset_rejected():
    with pytest.raises(PydanticValidationError):
        Settings(_env_file=None, reminder_days_before_expiry=[3, -1])


def test_non_positive_archive_timeout_rejected():
    with pytest.raises(PydanticValidationError):
        Settings(_env_file=None, archive_timeout_seconds=0)


def test_production_with_secrets_starts():
    settings = _prod()
    assert settings.is_prod
    assert not settings.is_dev


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"panel_api_key": SecretStr("")}, "PANEL_API_KEY"),
        ({"operator_api_key": None}, "OPERATOR_API_KEY"),
        (
            {"database_url": "postgresql+asyncpg://rental:rental_password@db/server_rental"},
            "development password",
        ),
    ],
)
def test_production_refuses_insecure_settings(overrides, message):
    with pytest.raises(RuntimeError, match=message):
        _prod(**overrides)


def test_rental_settings_snapshot(fake_settings):
    snapshot = RentalSettings.from_settings(fake_settings)

    assert snapshot.reminder_days == (3, 1)
    assert snapshot.reminder_channel_id == "reminder-channel"
    assert snapshot.excluded_discord_ids == frozenset({"excluded-1"})
    assert snapshot.panel_email_domain == "kpw.local"
