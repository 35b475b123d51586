"""Payroll period API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from payroll_recon.api.dependencies import CurrentActor, DbSession
from payroll_recon.api.schemas import (
    ApprovalResponse,
    ApproveEntriesRequest,
    EntryListResponse,
    EntryResponse,
    ErrorResponse,
    FinalizeResponse,
    MissingRatesResponse,
    PeriodListResponse,
    PeriodResponse,
    PeriodSummaryResponse,
    TransitionRequest,
)
from payroll_recon.services.approval_service import ApprovalService
from payroll_recon.services.finalize_service import Finalizer
from payroll_recon.services.period_service import PeriodService
from payroll_recon.services.sync_service import EntrySynchronizer

router = APIRouter(prefix="/periods", tags=["periods"])

PeriodId = Annotated[str, Path(pattern=r"^\d{4}-\d{2}-\d{2}$")]


# ============================================================================
# Period reads
# ============================================================================


@router.get("", response_model=PeriodListResponse)
async def list_periods(
    db: DbSession,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> PeriodListResponse:
    """List payroll periods, most recent first."""
    periods = await PeriodService(db).list_periods(limit)
    return PeriodListResponse(
        items=[PeriodResponse.model_validate(p) for p in periods],
        total=len(periods),
    )


@router.get(
    "/{period_id}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(db: DbSession, period_id: PeriodId) -> PeriodResponse:
    """Get a specific payroll period."""
    period = await PeriodService(db).get_period(period_id)
    return PeriodResponse.model_validate(period)


@router.get(
    "/{period_id}/summary",
    response_model=PeriodSummaryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period_summary(db: DbSession, period_id: PeriodId) -> PeriodSummaryResponse:
    """Live period totals, run totals and frozen totals."""
    summary = await PeriodService(db).summary(period_id)
    return PeriodSummaryResponse(**summary)


@router.get(
    "/{period_id}/entries",
    response_model=EntryListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_period_entries(
    db: DbSession,
    period_id: PeriodId,
    employee_id: Annotated[UUID | None, Query()] = None,
) -> EntryListResponse:
    """List entries of a period, optionally for one employee."""
    service = PeriodService(db)
    await service.get_period(period_id)
    entries = await service.list_entries(period_id, employee_id)
    return EntryListResponse(
        items=[EntryResponse.model_validate(e) for e in entries],
        total=len(entries),
    )


@router.get(
    "/{period_id}/missing-rates",
    response_model=MissingRatesResponse,
    responses={422: {"model": ErrorResponse}},
)
async def get_missing_rates(db: DbSession, period_id: PeriodId) -> MissingRatesResponse:
    """Employees with work in the period but no applicable pay rate."""
    employee_ids = await EntrySynchronizer(db).find_missing_rate_employee_ids(period_id)
    return MissingRatesResponse(period_id=period_id, employee_ids=employee_ids)


# ============================================================================
# Approval workflow
# ============================================================================


@router.post(
    "/{period_id}/approve-entries",
    response_model=ApprovalResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def approve_entries(
    db: DbSession,
    actor: CurrentActor,
    period_id: PeriodId,
    payload: ApproveEntriesRequest,
) -> ApprovalResponse:
    """Approve entries into this period's run. All-or-nothing."""
    result = await ApprovalService(db).approve_entries(
        period_id,
        payload.entry_ids,
        actor,
        require_employee_approval=payload.require_employee_approval,
    )
    await db.commit()
    return ApprovalResponse(
        run_id=result.run_id,
        approved=result.approved,
        already_approved=result.already_approved,
    )


@router.post(
    "/{period_id}/transition",
    response_model=PeriodResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def transition_period(
    db: DbSession,
    actor: CurrentActor,
    period_id: PeriodId,
    payload: TransitionRequest,
) -> PeriodResponse:
    """Move a period to review, approved, or back to review."""
    period = await PeriodService(db).transition(
        period_id, payload.to_status, actor, reason=payload.reason
    )
    await db.commit()
    return PeriodResponse.model_validate(period)


@router.post(
    "/{period_id}/finalize",
    response_model=FinalizeResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def finalize_period(
    db: DbSession,
    actor: CurrentActor,
    period_id: PeriodId,
) -> FinalizeResponse:
    """Lock an approved period and freeze its totals. Idempotent."""
    result = await Finalizer(db).finalize(period_id, actor)
    await db.commit()
    return FinalizeResponse(
        period_id=result.period_id,
        already_finalized=result.already_finalized,
        expense_created=result.expense_created,
        totals=result.totals,
    )
