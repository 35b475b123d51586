"""Synchronization and reconciliation endpoints."""

from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, status

from payroll_recon.api.dependencies import CurrentActor, DbSession
from payroll_recon.api.routes.periods import PeriodId
from payroll_recon.api.schemas import (
    ClockSyncRequest,
    ClockSyncResponse,
    DeductionSyncResponse,
    ErrorResponse,
    JobMissingRatesResponse,
    JobSyncResponse,
    ReconcileResponse,
)
from payroll_recon.exceptions import ValidationError
from payroll_recon.services.authorization import require_elevated
from payroll_recon.services.deduction_service import MissedWorkDeductionSync
from payroll_recon.services.reconciliation import reconcile_period
from payroll_recon.services.sync_service import EntrySynchronizer

router = APIRouter(tags=["sync"])

SYNC_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.post(
    "/periods/{period_id}/sync-jobs",
    response_model=JobSyncResponse,
    responses=SYNC_RESPONSES,
)
async def sync_jobs(
    db: DbSession,
    actor: CurrentActor,
    period_id: PeriodId,
) -> JobSyncResponse:
    """Create entries for completed jobs in the period. Idempotent."""
    require_elevated(actor, "sync jobs")
    result = await EntrySynchronizer(db).sync_jobs_for_period(period_id)
    await db.commit()
    return JobSyncResponse.model_validate(asdict(result))


@router.post(
    "/jobs/{job_id}/sync",
    response_model=JobSyncResponse,
    responses={**SYNC_RESPONSES, 404: {"model": ErrorResponse}},
)
async def sync_job(
    db: DbSession,
    actor: CurrentActor,
    job_id: UUID,
) -> JobSyncResponse:
    """Create entries for one completed job. Idempotent."""
    require_elevated(actor, "sync jobs")
    result = await EntrySynchronizer(db).sync_job(job_id)
    await db.commit()
    return JobSyncResponse.model_validate(asdict(result))


@router.get(
    "/jobs/{job_id}/missing-rates",
    response_model=JobMissingRatesResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_job_missing_rates(db: DbSession, job_id: UUID) -> JobMissingRatesResponse:
    """Assigned employees of the job with no applicable pay rate."""
    employee_ids = await EntrySynchronizer(db).missing_rate_employee_ids_for_job(job_id)
    return JobMissingRatesResponse(job_id=job_id, employee_ids=employee_ids)


@router.post(
    "/clock-sync",
    response_model=ClockSyncResponse,
    responses=SYNC_RESPONSES,
)
async def sync_clock_events(
    db: DbSession,
    actor: CurrentActor,
    payload: ClockSyncRequest,
) -> ClockSyncResponse:
    """Create entries for closed clock events in [start, end). Idempotent."""
    require_elevated(actor, "sync clock events")
    if payload.end <= payload.start:
        raise ValidationError("end must be after start")
    result = await EntrySynchronizer(db).sync_clock_events(payload.start, payload.end)
    await db.commit()
    return ClockSyncResponse.model_validate(asdict(result))


@router.post(
    "/periods/{period_id}/sync-deductions",
    response_model=DeductionSyncResponse,
    responses=SYNC_RESPONSES,
)
async def sync_deductions(
    db: DbSession,
    actor: CurrentActor,
    period_id: PeriodId,
) -> DeductionSyncResponse:
    """Converge monthly base earnings and missed-day deductions."""
    require_elevated(actor, "sync missed-work deductions")
    result = await MissedWorkDeductionSync(db).sync_missed_work_deductions(period_id)
    await db.commit()
    return DeductionSyncResponse.model_validate(asdict(result))


@router.post(
    "/periods/{period_id}/reconcile",
    response_model=ReconcileResponse,
    status_code=status.HTTP_200_OK,
    responses=SYNC_RESPONSES,
)
async def reconcile(
    db: DbSession,
    actor: CurrentActor,
    period_id: PeriodId,
) -> ReconcileResponse:
    """Run job, clock and deduction sync for the period."""
    require_elevated(actor, "reconcile periods")
    result = await reconcile_period(db, period_id)
    await db.commit()
    return ReconcileResponse(
        period_id=result.period_id,
        jobs=JobSyncResponse.model_validate(asdict(result.jobs)),
        clock=ClockSyncResponse.model_validate(asdict(result.clock)),
        deductions=DeductionSyncResponse.model_validate(asdict(result.deductions)),
        missing_rate_employee_ids=result.missing_rate_employee_ids,
    )
