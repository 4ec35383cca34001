"""Record store - persistence for applications, panel users and backups.

Every public method runs in its own short transaction, so a read-modify-write
on one application row is atomic. Returned ORM objects are detached but fully
loaded (grantees and backup records are eagerly loaded), so callers can read
them after the transaction has ended.

Only the rental orchestrators call the status-changing methods here
(activate, transition, update_many_status).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from server_rental.models import (
    Application,
    ApplicationPanelUser,
    ApplicationStatus,
    BackupRecord,
    PanelUser,
)
from server_rental.rental.errors import (
    AlreadyAssigned,
    ApplicationNotFound,
    NoCapacity,
    NotFound,
)
from server_rental.rental.lifecycle import TRANSITIONS, apply_transition

log = structlog.get_logger(__name__)


class RentalStore:
    """Repository over the rental tables.

    Args:
        session_factory: Factory from ``database.get_session_factory()``.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    async def create_application(
        self,
        *,
        applicant_id: str,
        organizer_id: str,
        description: str,
        requested_version: str,
        requested_period_days: int,
        grantee_ids: Sequence[str],
    ) -> Application:
        """Insert a PENDING application and link its grantees in order.

        Panel users are upserted by discord id, so a person who was a
        grantee before keeps their provisioned panel account.
        """
        async with self._session_factory() as session, session.begin():
            existing = await session.execute(
                select(PanelUser).where(PanelUser.discord_id.in_(grantee_ids))
            )
            by_discord_id = {user.discord_id: user for user in existing.scalars()}

            application = Application(
                status=ApplicationStatus.PENDING,
                applicant_id=applicant_id,
                organizer_id=organizer_id,
                description=description,
                requested_version=requested_version,
                requested_period_days=requested_period_days,
            )
            for position, discord_id in enumerate(grantee_ids):
                panel_user = by_discord_id.get(discord_id)
                if panel_user is None:
                    panel_user = PanelUser(discord_id=discord_id)
                    session.add(panel_user)
                    by_discord_id[discord_id] = panel_user
                application.panel_users.append(
                    ApplicationPanelUser(panel_user=panel_user, position=position)
                )
            session.add(application)
            await session.flush()
            application_id = application.id

        log.info(
            "store.application_created",
            application_id=application_id,
            grantees=len(grantee_ids),
        )
        return await self.require_application(application_id)

    async def get_application(self, application_id: int) -> Application | None:
        async with self._session_factory() as session:
            return await session.get(Application, application_id)

    async def require_application(self, application_id: int) -> Application:
        """Like get_application, but raises ApplicationNotFound."""
        application = await self.get_application(application_id)
        if application is None:
            raise ApplicationNotFound(application_id)
        return application

    async def assigned_resource_ids(self) -> set[str]:
        """Resource identifiers currently recorded on any application."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Application.assigned_resource_id).where(
                    Application.assigned_resource_id.is_not(None)
                )
            )
            return {identifier for identifier in result.scalars() if identifier}

    async def activate(
        self,
        application_id: int,
        resource_identifier: str,
        now: datetime | None = None,
    ) -> Application:
        """Record the assigned resource and move PENDING -> ACTIVE atomically.

        Raises:
            ApplicationNotFound: no such application.
            AlreadyAssigned: the row already holds a resource.
            InvalidTransition: the application is no longer PENDING.
            NoCapacity: another application took the resource concurrently.
        """
        try:
            async with self._session_factory() as session, session.begin():
                application = await session.get(
                    Application, application_id, with_for_update=True
                )
                if application is None:
                    raise ApplicationNotFound(application_id)
                if application.assigned_resource_id is not None:
                    raise AlreadyAssigned(application_id, application.assigned_resource_id)
                apply_transition(application, ApplicationStatus.ACTIVE, now=now)
                application.assigned_resource_id = resource_identifier
        except IntegrityError as exc:
            log.warning(
                "store.resource_conflict",
                application_id=application_id,
                resource=resource_identifier,
            )
            raise NoCapacity(
                f"Resource {resource_identifier} was assigned to another application"
            ) from exc

        log.info(
            "store.application_activated",
            application_id=application_id,
            resource=resource_identifier,
        )
        return await self.require_application(application_id)

    async def transition(
        self,
        application_id: int,
        target: ApplicationStatus,
        now: datetime | None = None,
    ) -> Application:
        """Apply one lifecycle transition to a single application."""
        async with self._session_factory() as session, session.begin():
            application = await session.get(
                Application, application_id, with_for_update=True
            )
            if application is None:
                raise ApplicationNotFound(application_id)
            previous = application.status
            apply_transition(application, target, now=now)

        log.info(
            "store.application_transitioned",
            application_id=application_id,
            from_status=previous,
            to_status=target,
        )
        return await self.require_application(application_id)

    async def update_many_status(
        self, application_ids: Iterable[int], target: ApplicationStatus
    ) -> int:
        """Move many applications to ``target`` in one statement.

        Only rows whose current status has an edge to ``target`` are
        touched; the number of updated rows is returned.
        """
        ids = list(application_ids)
        if not ids:
            return 0
        sources = [status for status, targets in TRANSITIONS.items() if target in targets]
        if not sources:
            return 0
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(Application)
                .where(Application.id.in_(ids), Application.status.in_(sources))
                .values(status=target, updated_at=datetime.now(UTC))
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount or 0

        log.info("store.status_batch_updated", target=target, requested=len(ids), updated=updated)
        return updated

    async def find_active_ending_between(
        self, start: datetime, end: datetime
    ) -> list[Application]:
        """ACTIVE applications with ``start <= end_date < end``."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Application)
                .where(
                    Application.status == ApplicationStatus.ACTIVE,
                    Application.end_date >= start,
                    Application.end_date < end,
                )
                .order_by(Application.end_date.asc(), Application.id.asc())
            )
            return list(result.scalars().all())

    async def find_active_expired(self, now: datetime) -> list[Application]:
        """ACTIVE applications with ``end_date`` strictly before ``now``."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Application)
                .where(
                    Application.status == ApplicationStatus.ACTIVE,
                    Application.end_date < now,
                )
                .order_by(Application.end_date.asc(), Application.id.asc())
            )
            return list(result.scalars().all())

    async def list_by_status(self, status: ApplicationStatus) -> list[Application]:
        """Applications in ``status``.

        PENDING is listed newest first, NEEDS_BACKUP by oldest end date
        first (most overdue on top); everything else by id.
        """
        stmt = select(Application).where(Application.status == status)
        if status == ApplicationStatus.PENDING:
            stmt = stmt.order_by(Application.created_at.desc(), Application.id.desc())
        elif status == ApplicationStatus.NEEDS_BACKUP:
            stmt = stmt.order_by(Application.end_date.asc(), Application.id.asc())
        else:
            stmt = stmt.order_by(Application.id.asc())
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_by_status(self) -> dict[ApplicationStatus, int]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Application.status, func.count(Application.id)).group_by(
                    Application.status
                )
            )
            counts = {status: 0 for status in ApplicationStatus}
            for status, count in result.all():
                counts[ApplicationStatus(status)] = count
            return counts

    # ------------------------------------------------------------------
    # Panel users
    # ------------------------------------------------------------------

    async def count_panel_users(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count(PanelUser.id)))
            return int(result.scalar_one())

    async def set_panel_identity(self, panel_user_id: int, username: str, email: str) -> None:
        """Record the panel username and email captured at approval time."""
        async with self._session_factory() as session, session.begin():
            panel_user = await self._get_panel_user(session, panel_user_id)
            panel_user.external_username = username
            panel_user.external_email = email
        log.debug("store.panel_identity_recorded", panel_user_id=panel_user_id, username=username)

    async def set_external_user_id(self, panel_user_id: int, external_user_id: int) -> None:
        async with self._session_factory() as session, session.begin():
            panel_user = await self._get_panel_user(session, panel_user_id)
            panel_user.external_user_id = external_user_id
        log.info(
            "store.external_user_recorded",
            panel_user_id=panel_user_id,
            external_user_id=external_user_id,
        )

    async def mark_external_role(self, panel_user_id: int) -> None:
        async with self._session_factory() as session, session.begin():
            panel_user = await self._get_panel_user(session, panel_user_id)
            panel_user.has_external_role = True

    @staticmethod
    async def _get_panel_user(session: AsyncSession, panel_user_id: int) -> PanelUser:
        panel_user = await session.get(PanelUser, panel_user_id)
        if panel_user is None:
            raise NotFound(f"Panel user not found: {panel_user_id}")
        return panel_user

    # ------------------------------------------------------------------
    # Backup records
    # ------------------------------------------------------------------

    async def create_backup_record(
        self,
        *,
        application_id: int,
        external_backup_id: str,
        archive_path: str,
        backup_date: datetime,
        comment: str | None = None,
    ) -> BackupRecord:
        """Append one archive audit row. Records are never updated."""
        async with self._session_factory() as session, session.begin():
            record = BackupRecord(
                application_id=application_id,
                external_backup_id=external_backup_id,
                archive_path=archive_path,
                backup_date=backup_date,
                comment=comment,
            )
            session.add(record)
            await session.flush()

        log.info(
            "store.backup_recorded",
            application_id=application_id,
            backup_id=external_backup_id,
            archive_path=archive_path,
        )
        return record
