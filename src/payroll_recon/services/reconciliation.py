"""Scheduled, idempotent reconciliation of one payroll period."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from payroll_recon.calculators.periods import period_for_id
from payroll_recon.calculators.rate_resolver import RateResolver
from payroll_recon.calculators.types import ReconcileResult
from payroll_recon.services.deduction_service import MissedWorkDeductionSync
from payroll_recon.services.period_service import PeriodService, assert_period_mutable
from payroll_recon.services.sync_service import EntrySynchronizer

logger = logging.getLogger(__name__)


async def reconcile_period(
    session: AsyncSession,
    period_id: str,
    deduction_amount: Decimal | None = None,
) -> ReconcileResult:
    """Bring a period's entries up to date with its work evidence.

    Runs job sync, clock sync over the period window and the missed-work
    deduction sync, in that order. Every step is idempotent, so running
    this on a schedule needs no cleanup afterwards.

    Raises:
        ValidationError: If period_id is not a valid pay date
        LockedPeriodError: If the period is locked
    """
    period = await PeriodService(session).ensure_period_for_id(period_id)
    assert_period_mutable(period, "reconcile")

    resolver = RateResolver(session)
    synchronizer = EntrySynchronizer(session, resolver)

    jobs = await synchronizer.sync_jobs_for_period(period.period_id)
    clock_start, clock_end = period_for_id(period.period_id).clock_range()
    clock = await synchronizer.sync_clock_events(clock_start, clock_end)
    deductions = await MissedWorkDeductionSync(
        session, resolver, deduction_amount
    ).sync_missed_work_deductions(period.period_id)

    result = ReconcileResult(
        period_id=period.period_id,
        jobs=jobs,
        clock=clock,
        deductions=deductions,
    )
    if result.missing_rate_employee_ids:
        logger.warning(
            "Period %s has %d employees without a pay rate: %s",
            period.period_id,
            len(result.missing_rate_employee_ids),
            ", ".join(str(e) for e in result.missing_rate_employee_ids),
        )
    return result
