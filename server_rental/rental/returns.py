"""Return / backup orchestrator and access revocation.

The order of steps in process_return is what keeps data safe:

1. load application, resource and the selected backup   - no side effects
2. archive the backup                                   - abort point
3. persist the BackupRecord                             - commit point
4. unlock all locked backups                            - best-effort
5. reinstall the resource                               - destructive
6. revoke grantee access                                - best-effort per grantee
7. NEEDS_BACKUP -> RETURNED
8. notify organizer and grantees                        - best-effort

Nothing destructive runs unless the archive copy succeeded and its record
was written. Steps already committed are never rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import structlog

from server_rental.connectors.panel import PanelBackup, PanelClient, PanelResource
from server_rental.models.application import Application, ApplicationStatus
from server_rental.models.backup_record import BackupRecord
from server_rental.rental import messages
from server_rental.rental.context import RentalContext
from server_rental.rental.errors import (
    BackupNotFound,
    InvalidTransition,
    NotAssigned,
    ResourceNotFound,
)
from server_rental.services.archive import build_archive_path

log = structlog.get_logger(__name__)

BACKUP_OPTIONS_LIMIT = 10


@dataclass
class RevocationReport:
    """Outcome of one access revocation pass, by grantee discord id."""

    revoked: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


async def resolve_resource(ctx: RentalContext, application: Application) -> PanelResource:
    """Find the application's assigned resource on the panel."""
    if application.assigned_resource_id is None:
        raise NotAssigned(application.id)
    for resource in await ctx.panel.list_resources():
        if resource.identifier == application.assigned_resource_id:
            return resource
    raise ResourceNotFound(application.assigned_resource_id)


def sort_backup_options(backups: list[PanelBackup]) -> list[PanelBackup]:
    """Successful backups, locked ones first, then newest first."""
    successful = [backup for backup in backups if backup.is_successful]
    return sorted(
        successful,
        key=lambda backup: (not backup.is_locked, -backup.created_at.timestamp()),
    )


async def get_backup_options(
    ctx: RentalContext, application_id: int, limit: int = BACKUP_OPTIONS_LIMIT
) -> list[PanelBackup]:
    """Backups an operator can choose from when returning a resource."""
    application = await ctx.store.require_application(application_id)
    resource = await resolve_resource(ctx, application)
    backups = await ctx.panel.list_backups(resource.id)
    return sort_backup_options(backups)[:limit]


async def process_return(
    ctx: RentalContext,
    application_id: int,
    selected_backup_id: str,
    comment: str | None = None,
    *,
    now: datetime | None = None,
) -> BackupRecord:
    """Archive the selected backup, then reclaim the resource.

    Raises:
        ApplicationNotFound / NotAssigned / ResourceNotFound / BackupNotFound:
            before any side effect.
        InvalidTransition: the application is not NEEDS_BACKUP.
        ArchiveError: the copy failed; nothing after it has run.
        PanelError: listing or reinstalling on the panel failed.
    """
    with structlog.contextvars.bound_contextvars(application_id=application_id):
        application = await ctx.store.require_application(application_id)
        if application.status != ApplicationStatus.NEEDS_BACKUP:
            raise InvalidTransition(application.status, ApplicationStatus.RETURNED)
        resource = await resolve_resource(ctx, application)

        backups = await ctx.panel.list_backups(resource.id)
        backup = next((b for b in backups if b.id == selected_backup_id), None)
        if backup is None:
            raise BackupNotFound(selected_backup_id)

        log.info("returns.started", resource=resource.identifier, backup_id=backup.id)

        path = build_archive_path(
            application, backup, ctx.settings.archive_base_path, comment, now=now
        )
        try:
            await ctx.archive.copy(backup.id, path.full_path)
        except Exception as exc:
            log.error("returns.archive_failed", backup_id=backup.id, error=str(exc))
            raise

        record = await ctx.store.create_backup_record(
            application_id=application_id,
            external_backup_id=backup.id,
            archive_path=path.full_path,
            backup_date=backup.created_at,
            comment=comment,
        )

        await unlock_all_backups(ctx.panel, resource.id)
        await ctx.panel.reinstall_resource(resource.id)
        report = await revoke_access(ctx, application, resource)

        returned = await ctx.store.transition(application_id, ApplicationStatus.RETURNED)
        log.info(
            "returns.completed",
            archive_path=path.full_path,
            revoked=len(report.revoked),
            skipped=len(report.skipped),
            failed=len(report.failed),
        )

        await _notify(ctx, returned, path.full_path)
        return record


async def unlock_all_backups(panel: PanelClient, resource_id: int) -> int:
    """Unlock every locked backup of a resource; returns the number unlocked."""
    try:
        backups = await panel.list_backups(resource_id)
    except Exception as exc:
        log.warning("returns.unlock_list_failed", resource_id=resource_id, error=str(exc))
        return 0

    unlocked = 0
    for backup in backups:
        if not backup.is_locked:
            continue
        try:
            await panel.unlock_backup(resource_id, backup.id)
            unlocked += 1
        except Exception as exc:
            log.warning("returns.unlock_failed", backup_id=backup.id, error=str(exc))
    return unlocked


async def revoke_access(
    ctx: RentalContext, application: Application, resource: PanelResource
) -> RevocationReport:
    """Remove every grantee's access to ``resource``.

    Grantees on the exclusion list are skipped; a failure for one grantee
    does not stop the others.
    """
    report = RevocationReport()
    for grantee in application.grantees:
        if grantee.external_user_id is None:
            continue
        if grantee.discord_id in ctx.settings.excluded_discord_ids:
            log.info("returns.revocation_skipped", discord_id=grantee.discord_id)
            report.skipped.append(grantee.discord_id)
            continue
        try:
            await ctx.panel.revoke_access(resource.id, grantee.external_user_id)
            report.revoked.append(grantee.discord_id)
        except Exception as exc:
            log.warning(
                "returns.revocation_failed",
                discord_id=grantee.discord_id,
                resource=resource.identifier,
                error=str(exc),
            )
            report.failed.append(grantee.discord_id)
    return report


async def revoke_application_access(
    ctx: RentalContext, application_id: int
) -> RevocationReport:
    """Standalone revocation for one application's grantees."""
    application = await ctx.store.require_application(application_id)
    if application.assigned_resource_id is None:
        log.warning("returns.revocation_unassigned", application_id=application_id)
        return RevocationReport()
    resource = await resolve_resource(ctx, application)
    return await revoke_access(ctx, application, resource)


async def _notify(ctx: RentalContext, application: Application, archive_path: str) -> None:
    notice = messages.reclaimed_notice(application, archive_path)
    recipients = [application.organizer_id, *(g.discord_id for g in application.grantees)]
    for discord_id in recipients:
        try:
            await ctx.notifier.send_direct(discord_id, notice)
        except Exception as exc:
            log.warning("returns.notify_failed", discord_id=discord_id, error=str(exc))
