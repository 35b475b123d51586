"""Compensable entry endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from payroll_recon.api.dependencies import CurrentActor, DbSession
from payroll_recon.api.schemas import (
    ApprovalResponse,
    EmployeeApproveRequest,
    EntryResponse,
    ErrorResponse,
    ManualEntryCreate,
    OverrideRequest,
)
from payroll_recon.services.approval_service import ApprovalService
from payroll_recon.services.entry_service import EntryService

router = APIRouter(prefix="/entries", tags=["entries"])

WRITE_RESPONSES = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.post(
    "",
    response_model=EntryResponse,
    status_code=status.HTTP_201_CREATED,
    responses=WRITE_RESPONSES,
)
async def create_manual_entry(
    db: DbSession,
    actor: CurrentActor,
    payload: ManualEntryCreate,
) -> EntryResponse:
    """Add a manual earning or deduction."""
    entry = await EntryService(db).add_manual_entry(
        actor,
        period_id=payload.period_id,
        employee_id=payload.employee_id,
        entry_type=payload.entry_type,
        category=payload.category,
        amount=payload.amount,
        description=payload.description,
        hours=payload.hours,
        units=payload.units,
        work_date=payload.work_date,
    )
    await db.commit()
    return EntryResponse.model_validate(entry)


@router.post(
    "/employee-approve",
    response_model=ApprovalResponse,
    responses=WRITE_RESPONSES,
)
async def employee_approve_entries(
    db: DbSession,
    actor: CurrentActor,
    payload: EmployeeApproveRequest,
) -> ApprovalResponse:
    """Approve the caller's own entries."""
    result = await ApprovalService(db).employee_approve_entries(actor, payload.entry_ids)
    await db.commit()
    return ApprovalResponse(
        run_id=result.run_id,
        approved=result.approved,
        already_approved=result.already_approved,
    )


@router.post(
    "/{entry_id}/override",
    response_model=EntryResponse,
    responses=WRITE_RESPONSES,
)
async def override_entry(
    db: DbSession,
    actor: CurrentActor,
    entry_id: Annotated[UUID, Path()],
    payload: OverrideRequest,
) -> EntryResponse:
    """Replace the amount of an earning. The computed original is kept."""
    entry = await EntryService(db).override_entry(
        entry_id, payload.amount, actor, reason=payload.reason
    )
    await db.commit()
    return EntryResponse.model_validate(entry)
