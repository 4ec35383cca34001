"""Read-only views over the record store for operators."""

from __future__ import annotations

from dataclasses import dataclass

from server_rental.models.application import Application, ApplicationStatus
from server_rental.rental.context import RentalContext


@dataclass(frozen=True)
class StatusSummary:
    pending: int
    active: int
    needs_backup: int
    returned: int
    rejected: int
    total: int
    panel_users: int


async def get_status_summary(ctx: RentalContext) -> StatusSummary:
    counts = await ctx.store.count_by_status()
    return StatusSummary(
        pending=counts[ApplicationStatus.PENDING],
        active=counts[ApplicationStatus.ACTIVE],
        needs_backup=counts[ApplicationStatus.NEEDS_BACKUP],
        returned=counts[ApplicationStatus.RETURNED],
        rejected=counts[ApplicationStatus.REJECTED],
        total=sum(counts.values()),
        panel_users=await ctx.store.count_panel_users(),
    )


async def list_applications(
    ctx: RentalContext, status: ApplicationStatus
) -> list[Application]:
    """Applications in ``status``, ordered for the operator's view."""
    return await ctx.store.list_by_status(status)


async def get_application(ctx: RentalContext, application_id: int) -> Application:
    return await ctx.store.require_application(application_id)
