"""Tests for RentalStore against an in-memory SQLite database."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from server_rental.models import ApplicationStatus
from server_rental.rental.errors import (
    AlreadyAssigned,
    ApplicationNotFound,
    InvalidTransition,
    NoCapacity,
)
from tests.conftest import DAY0, make_active, make_needs_backup, make_pending


class TestCreateApplication:
    async def test_creates_pending_application_with_ordered_grantees(self, store):
        application = await make_pending(store, grantees=["c", "a", "b"])

        assert application.status == ApplicationStatus.PENDING
        assert [g.discord_id for g in application.grantees] == ["c", "a", "b"]
        assert application.start_date is None
        assert application.end_date is None
        assert application.has_consistent_dates()

    async def test_panel_users_are_upserted_by_discord_id(self, store):
        first = await make_pending(store, grantees=["shared", "only-first"])
        second = await make_pending(store, grantees=["shared"])

        assert first.grantees[0].id == second.grantees[0].id
        assert await store.count_panel_users() == 2

    async def test_existing_panel_account_is_kept(self, store):
        first = await make_pending(store, grantees=["shared"])
        await store.set_external_user_id(first.grantees[0].id, 77)

        second = await make_pending(store, grantees=["shared"])

        assert second.grantees[0].external_user_id == 77
        assert second.grantees[0].is_provisioned

    async def test_require_application_missing(self, store):
        with pytest.raises(ApplicationNotFound):
            await store.require_application(999)

    async def test_timestamps_are_utc_aware(self, store):
        application = await make_pending(store)
        assert application.created_at.tzinfo is not None


class TestActivate:
    async def test_sets_resource_and_period(self, store):
        application = await make_pending(store, period_days=14)

        active = await store.activate(application.id, "srv00001", DAY0)

        assert active.status == ApplicationStatus.ACTIVE
        assert active.assigned_resource_id == "srv00001"
        assert active.start_date == DAY0
        assert active.end_date == DAY0 + timedelta(days=14)
        assert await store.assigned_resource_ids() == {"srv00001"}

    async def test_second_activation_is_rejected(self, store):
        application = await make_pending(store)
        await store.activate(application.id, "srv00001", DAY0)

        with pytest.raises(AlreadyAssigned):
            await store.activate(application.id, "srv00002", DAY0)

    async def test_resource_cannot_be_held_twice(self, store):
        first = await make_pending(store)
        second = await make_pending(store)
        await store.activate(first.id, "srv00001", DAY0)

        with pytest.raises(NoCapacity):
            await store.activate(second.id, "srv00001", DAY0)

        reloaded = await store.require_application(second.id)
        assert reloaded.status == ApplicationStatus.PENDING
        assert reloaded.assigned_resource_id is None

    async def test_rejected_application_cannot_be_activated(self, store):
        application = await make_pending(store)
        await store.transition(application.id, ApplicationStatus.REJECTED)

        with pytest.raises(InvalidTransition):
            await store.activate(application.id, "srv00001", DAY0)


class TestBatchUpdate:
    async def test_only_rows_with_an_edge_to_target_are_updated(self, store):
        active = await make_active(store, "srv00001")
        pending = await make_pending(store)
        needs_backup = await make_needs_backup(store, "srv00002")

        updated = await store.update_many_status(
            [active.id, pending.id, needs_backup.id], ApplicationStatus.NEEDS_BACKUP
        )

        assert updated == 1
        assert (await store.require_application(active.id)).status == ApplicationStatus.NEEDS_BACKUP
        assert (await store.require_application(pending.id)).status == ApplicationStatus.PENDING

    async def test_empty_id_list(self, store):
        assert await store.update_many_status([], ApplicationStatus.NEEDS_BACKUP) == 0


class TestQueries:
    async def test_window_is_half_open(self, store):
        start = datetime(2026, 3, 20, tzinfo=UTC)
        end = start + timedelta(days=1)
        at_start = await make_active(store, "srv00001", start=start - timedelta(days=5), period_days=5)
        before_end = await make_active(
            store, "srv00002", start=end - timedelta(days=5, seconds=1), period_days=5
        )
        await make_active(store, "srv00003", start=end - timedelta(days=5), period_days=5)

        found = await store.find_active_ending_between(start, end)

        assert [a.id for a in found] == [at_start.id, before_end.id]

    async def test_find_active_expired_is_strict(self, store):
        now = datetime(2026, 3, 20, tzinfo=UTC)
        expired = await make_active(store, "srv00001", start=now - timedelta(days=3), period_days=2)
        await make_active(store, "srv00002", start=now - timedelta(days=2), period_days=2)

        found = await store.find_active_expired(now)

        assert [a.id for a in found] == [expired.id]

    async def test_pending_listed_newest_first(self, store):
        first = await make_pending(store)
        second = await make_pending(store)

        listed = await store.list_by_status(ApplicationStatus.PENDING)

        assert [a.id for a in listed] == [second.id, first.id]

    async def test_needs_backup_listed_oldest_end_first(self, store):
        later = await make_active(store, "srv00001", period_days=10)
        earlier = await make_active(store, "srv00002", period_days=2)
        await store.update_many_status([later.id, earlier.id], ApplicationStatus.NEEDS_BACKUP)

        listed = await store.list_by_status(ApplicationStatus.NEEDS_BACKUP)

        assert [a.id for a in listed] == [earlier.id, later.id]

    async def test_count_by_status_includes_every_status(self, store):
        await make_pending(store)
        await make_active(store, "srv00001")

        counts = await store.count_by_status()

        assert set(counts) == set(ApplicationStatus)
        assert counts[ApplicationStatus.PENDING] == 1
        assert counts[ApplicationStatus.ACTIVE] == 1
        assert counts[ApplicationStatus.RETURNED] == 0


class TestBackupRecords:
    async def test_create_backup_record(self, store):
        application = await make_needs_backup(store, "srv00001")

        record = await store.create_backup_record(
            application_id=application.id,
            external_backup_id="uuid-1",
            archive_path="ServerBackups/2026/x/[20260301].tar.gz",
            backup_date=DAY0,
            comment="final",
        )

        assert record.id is not None
        reloaded = await store.require_application(application.id)
        assert [r.external_backup_id for r in reloaded.backup_records] == ["uuid-1"]
        assert reloaded.backup_records[0].backup_date == DAY0
