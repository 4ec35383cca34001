"""Resource assignment orchestrator.

Runs once per approved application, as a straight-line pipeline:

1. load the application (must be PENDING and unassigned)
2. filter the panel's resources down to free ones
3. pick one deterministically
4. create missing panel accounts        - abort point
5. grant each account access            - abort point
6. grant the Discord panel role         - best-effort
7. record the resource and activate     - commit point
8. notify organizer and grantees        - best-effort

Any failure before step 7 leaves the application PENDING for a manual
retry. Panel accounts created in step 4 are persisted immediately and
reused on retry; access grants from a failed run are not rolled back.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import structlog

from server_rental.connectors.panel import PanelError, PanelResource
from server_rental.models.application import Application, ApplicationStatus
from server_rental.rental import messages
from server_rental.rental.context import RentalContext
from server_rental.rental.errors import (
    AlreadyAssigned,
    InvalidTransition,
    NoCapacity,
    ProvisioningFailed,
)

log = structlog.get_logger(__name__)


def select_available_resources(
    resources: Iterable[PanelResource], assigned_identifiers: set[str]
) -> list[PanelResource]:
    """Resources that are neither suspended nor held by an application."""
    return [
        resource
        for resource in resources
        if not resource.suspended and resource.identifier not in assigned_identifiers
    ]


def pick_resource(candidates: list[PanelResource]) -> PanelResource:
    """First candidate by panel id; stable for any listing order."""
    if not candidates:
        raise NoCapacity()
    return sorted(candidates, key=lambda resource: resource.id)[0]


async def assign(
    ctx: RentalContext,
    application_id: int,
    *,
    now: datetime | None = None,
) -> Application:
    """Provision a free resource for a PENDING application and activate it.

    Raises:
        ApplicationNotFound: no such application.
        InvalidTransition: the application is not PENDING.
        AlreadyAssigned: the application already holds a resource.
        NoCapacity: no free resource on the panel.
        ProvisioningFailed: account creation or an access grant failed.
        PanelError: listing the panel's resources failed.
    """
    with structlog.contextvars.bound_contextvars(application_id=application_id):
        application = await ctx.store.require_application(application_id)
        if application.status != ApplicationStatus.PENDING:
            raise InvalidTransition(application.status, ApplicationStatus.ACTIVE)
        if application.assigned_resource_id is not None:
            raise AlreadyAssigned(application_id, application.assigned_resource_id)

        log.info("assignment.started", grantees=len(application.grantees))

        resources = await ctx.panel.list_resources()
        assigned = await ctx.store.assigned_resource_ids()
        candidates = select_available_resources(resources, assigned)
        if not candidates:
            log.warning("assignment.no_capacity", resources=len(resources))
            raise NoCapacity()
        resource = pick_resource(candidates)
        log.info("assignment.resource_selected", resource=resource.identifier)

        external_ids = await _provision_accounts(ctx, application)
        await _grant_access(ctx, application, resource, external_ids)
        await _grant_roles(ctx, application)

        activated = await ctx.store.activate(application_id, resource.identifier, now)
        log.info(
            "assignment.completed",
            resource=resource.identifier,
            end_date=activated.end_date.isoformat() if activated.end_date else None,
        )

        await _notify(ctx, activated, resource)
        return activated


async def _provision_accounts(ctx: RentalContext, application: Application) -> dict[int, int]:
    """Create missing panel accounts; returns panel_user_id -> external id."""
    external_ids: dict[int, int] = {}
    for grantee in application.grantees:
        if grantee.external_user_id is not None:
            external_ids[grantee.id] = grantee.external_user_id
            continue
        if not grantee.external_username or not grantee.external_email:
            log.warning("assignment.grantee_without_identity", discord_id=grantee.discord_id)
            continue
        try:
            external_id = await ctx.panel.create_user(
                grantee.external_username, grantee.external_email
            )
        except PanelError as exc:
            log.error(
                "assignment.account_creation_failed",
                discord_id=grantee.discord_id,
                username=grantee.external_username,
                error=str(exc),
            )
            raise ProvisioningFailed(grantee.discord_id, "create_user", str(exc)) from exc
        await ctx.store.set_external_user_id(grantee.id, external_id)
        external_ids[grantee.id] = external_id
    return external_ids


async def _grant_access(
    ctx: RentalContext,
    application: Application,
    resource: PanelResource,
    external_ids: dict[int, int],
) -> None:
    for grantee in application.grantees:
        external_id = external_ids.get(grantee.id)
        if external_id is None:
            continue
        try:
            await ctx.panel.grant_access(resource.id, external_id)
        except PanelError as exc:
            log.error(
                "assignment.access_grant_failed",
                discord_id=grantee.discord_id,
                resource=resource.identifier,
                error=str(exc),
            )
            raise ProvisioningFailed(grantee.discord_id, "grant_access", str(exc)) from exc


async def _grant_roles(ctx: RentalContext, application: Application) -> None:
    for grantee in application.grantees:
        if grantee.has_external_role:
            continue
        try:
            granted = await ctx.notifier.add_role(grantee.discord_id)
            if granted:
                await ctx.store.mark_external_role(grantee.id)
        except Exception as exc:
            log.warning(
                "assignment.role_grant_failed",
                discord_id=grantee.discord_id,
                error=str(exc),
            )


async def _notify(ctx: RentalContext, application: Application, resource: PanelResource) -> None:
    """Tell the organizer and each grantee; delivery failures are logged only."""
    notices = [(application.organizer_id, messages.assignment_notice(application, resource))]
    notices.extend(
        (
            grantee.discord_id,
            messages.access_granted_notice(application, resource, grantee.external_username),
        )
        for grantee in application.grantees
    )
    for discord_id, notice in notices:
        try:
            await ctx.notifier.send_direct(discord_id, notice)
        except Exception as exc:
            log.warning("assignment.notify_failed", discord_id=discord_id, error=str(exc))
