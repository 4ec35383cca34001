"""Rental operator API endpoints.

POST   /api/v1/applications                  - Submit an application
GET    /api/v1/applications?status=          - List applications in a status
GET    /api/v1/applications/{id}             - Get one application
POST   /api/v1/applications/{id}/approve     - Approve and assign a resource
POST   /api/v1/applications/{id}/reject      - Reject a pending application
GET    /api/v1/applications/{id}/backups     - Backup options for a return
POST   /api/v1/applications/{id}/return      - Archive a backup and reclaim
POST   /api/v1/applications/{id}/revoke      - Revoke grantee panel access
POST   /api/v1/expiry/run                    - Run one expiry scanner cycle
GET    /api/v1/status                        - Counts per status

Every endpoint requires the operator API key. Rental errors are turned into
HTTP responses by the handlers in server_rental.api.errors.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from server_rental.api.deps import get_rental_context, get_scanner, require_operator_key
from server_rental.models.application import ApplicationStatus
from server_rental.rental.context import RentalContext
from server_rental.rental.expiry import ExpiryScanner
from server_rental.rental.operations import Operation, dispatch
from server_rental.rental.queries import get_application, list_applications

router = APIRouter(tags=["rental"], dependencies=[Depends(require_operator_key)])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class SubmitApplicationRequest(BaseModel):
    applicant_id: str = Field(..., min_length=1, max_length=32)
    organizer_id: str = Field(..., min_length=1, max_length=32)
    description: str
    requested_version: str
    requested_period_days: int
    grantee_ids: list[str] = Field(..., description="Discord ids of the panel users")


class ApproveRequest(BaseModel):
    usernames: list[str] = Field(
        ..., description="Panel usernames, one per grantee in submission order"
    )


class ReturnRequest(BaseModel):
    backup_id: str = Field(..., min_length=1)
    comment: str | None = Field(default=None, max_length=100)


class GranteeResponse(BaseModel):
    discord_id: str
    external_username: str | None
    external_user_id: int | None
    has_external_role: bool

    model_config = {"from_attributes": True}


class ApplicationResponse(BaseModel):
    id: int
    status: ApplicationStatus
    applicant_id: str
    organizer_id: str
    description: str
    requested_version: str
    requested_period_days: int
    start_date: datetime | None
    end_date: datetime | None
    assigned_resource_id: str | None
    created_at: datetime
    grantees: list[GranteeResponse]

    model_config = {"from_attributes": True}


class BackupOptionResponse(BaseModel):
    id: str
    name: str
    created_at: datetime
    bytes: int
    is_successful: bool
    is_locked: bool

    model_config = {"from_attributes": True}


class BackupRecordResponse(BaseModel):
    id: int
    application_id: int
    external_backup_id: str
    archive_path: str
    backup_date: datetime
    comment: str | None

    model_config = {"from_attributes": True}


class RevocationResponse(BaseModel):
    revoked: list[str]
    skipped: list[str]
    failed: list[str]

    model_config = {"from_attributes": True}


class CycleResponse(BaseModel):
    started_at: datetime
    reminders: dict[int, list[int]]
    reminder_failures: list[int]
    expired: list[int]
    promoted: int
    errors: list[str]

    model_config = {"from_attributes": True}


class StatusSummaryResponse(BaseModel):
    pending: int
    active: int
    needs_backup: int
    returned: int
    rejected: int
    total: int
    panel_users: int

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


@router.post(
    "/applications",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit(
    body: SubmitApplicationRequest,
    ctx: RentalContext = Depends(get_rental_context),
) -> ApplicationResponse:
    application = await dispatch(ctx, Operation.SUBMIT, **body.model_dump())
    return ApplicationResponse.model_validate(application)


@router.get("/applications", response_model=list[ApplicationResponse])
async def list_by_status(
    status_filter: ApplicationStatus = Query(default=ApplicationStatus.PENDING, alias="status"),
    ctx: RentalContext = Depends(get_rental_context),
) -> list[ApplicationResponse]:
    applications = await list_applications(ctx, status_filter)
    return [ApplicationResponse.model_validate(a) for a in applications]


@router.get("/applications/{application_id}", response_model=ApplicationResponse)
async def get_one(
    application_id: int,
    ctx: RentalContext = Depends(get_rental_context),
) -> ApplicationResponse:
    return ApplicationResponse.model_validate(await get_application(ctx, application_id))


@router.post("/applications/{application_id}/approve", response_model=ApplicationResponse)
async def approve(
    application_id: int,
    body: ApproveRequest,
    ctx: RentalContext = Depends(get_rental_context),
) -> ApplicationResponse:
    application = await dispatch(
        ctx, Operation.APPROVE, application_id=application_id, usernames=body.usernames
    )
    return ApplicationResponse.model_validate(application)


@router.post("/applications/{application_id}/reject", response_model=ApplicationResponse)
async def reject(
    application_id: int,
    ctx: RentalContext = Depends(get_rental_context),
) -> ApplicationResponse:
    application = await dispatch(ctx, Operation.REJECT, application_id=application_id)
    return ApplicationResponse.model_validate(application)


@router.get(
    "/applications/{application_id}/backups",
    response_model=list[BackupOptionResponse],
)
async def backup_options(
    application_id: int,
    ctx: RentalContext = Depends(get_rental_context),
) -> list[BackupOptionResponse]:
    backups = await dispatch(ctx, Operation.LIST_BACKUPS, application_id=application_id)
    return [BackupOptionResponse.model_validate(b) for b in backups]


@router.post("/applications/{application_id}/return", response_model=BackupRecordResponse)
async def process_return(
    application_id: int,
    body: ReturnRequest,
    ctx: RentalContext = Depends(get_rental_context),
) -> BackupRecordResponse:
    record = await dispatch(
        ctx,
        Operation.PROCESS_RETURN,
        application_id=application_id,
        selected_backup_id=body.backup_id,
        comment=body.comment,
    )
    return BackupRecordResponse.model_validate(record)


@router.post("/applications/{application_id}/revoke", response_model=RevocationResponse)
async def revoke(
    application_id: int,
    ctx: RentalContext = Depends(get_rental_context),
) -> RevocationResponse:
    report = await dispatch(ctx, Operation.REVOKE_ACCESS, application_id=application_id)
    return RevocationResponse.model_validate(report)


# ---------------------------------------------------------------------------
# Scanner and status
# ---------------------------------------------------------------------------


@router.post("/expiry/run", response_model=CycleResponse)
async def run_expiry_cycle(
    ctx: RentalContext = Depends(get_rental_context),
    scanner: ExpiryScanner | None = Depends(get_scanner),
) -> CycleResponse:
    report = await dispatch(ctx, Operation.RUN_EXPIRY_CYCLE, scanner=scanner)
    return CycleResponse.model_validate(report)


@router.get("/status", response_model=StatusSummaryResponse)
async def status_summary(
    ctx: RentalContext = Depends(get_rental_context),
) -> StatusSummaryResponse:
    summary = await dispatch(ctx, Operation.STATUS)
    return StatusSummaryResponse.model_validate(summary)
