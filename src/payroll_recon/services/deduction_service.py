"""Monthly base earnings and missed-work deductions for salaried staff."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from payroll_recon.calculators.earnings import round_to_cents, semi_monthly_base
from payroll_recon.calculators.periods import period_for_id
from payroll_recon.calculators.rate_resolver import RateResolver
from payroll_recon.calculators.types import (
    MISSED_DAY_CATEGORY,
    DeductionSyncResult,
    EntrySource,
    EntryType,
    RateSnapshot,
    RateType,
)
from payroll_recon.config import get_settings
from payroll_recon.database import insert_ignore
from payroll_recon.exceptions import ConflictError
from payroll_recon.models import (
    ClockEvent,
    CompensableEntry,
    Employee,
    Job,
    JobAssignment,
    PayRate,
    PayrollPeriod,
    ScheduledWorkDay,
)
from payroll_recon.services.period_service import PeriodService, assert_period_mutable
from payroll_recon.services.state_machine import PeriodStatus

logger = logging.getLogger(__name__)

AUTO_SOURCES = (EntrySource.MISSED_DAY_AUTO.value, EntrySource.MONTHLY_BASE_AUTO.value)


def monthly_entry_key(employee_id: UUID, period_id: str) -> str:
    return f"monthly:{employee_id}:{period_id}"


def missed_day_key(employee_id: UUID, work_date: date) -> str:
    return f"missed:{employee_id}:{work_date.isoformat()}"


class MissedWorkDeductionSync:
    """Keeps the automatic entries of monthly employees in step with reality.

    The desired set of automatic entries is derived from scratch on every
    run: one base earning per monthly employee, one deduction per scheduled
    day without work. Missing entries are inserted, stale ones removed and
    drifted amounts corrected, so the result does not depend on whether
    job sync ran before or after.

    Overridden entries and entries already frozen into a locked run are
    left alone.
    """

    def __init__(
        self,
        session: AsyncSession,
        resolver: RateResolver | None = None,
        deduction_amount: Decimal | None = None,
    ):
        self.session = session
        self.resolver = resolver or RateResolver(session)
        self.periods = PeriodService(session)
        if deduction_amount is None:
            deduction_amount = get_settings().missed_day_deduction_amount
        self.deduction_amount = round_to_cents(Decimal(deduction_amount))

    async def sync_missed_work_deductions(self, period_id: str) -> DeductionSyncResult:
        """Converge the period's automatic entries.

        Raises:
            ValidationError: If period_id is not a valid pay date
            LockedPeriodError: If the period is locked
        """
        period = await self.periods.ensure_period_for_id(period_id)
        assert_period_mutable(period, "sync missed-work deductions")
        result = DeductionSyncResult(period_id=period.period_id)

        monthly_rates = await self._monthly_employees(period)
        desired = await self._desired_entries(period, monthly_rates)

        existing = await self._existing_auto_entries(period.period_id)
        frozen_runs = await self._locked_run_ids()

        for key, entry in existing.items():
            if entry.approved_in_run_id in frozen_runs or entry.is_overridden:
                continue
            wanted = desired.get(key)
            if wanted is None:
                await self.session.delete(entry)
                result.removed += 1
            elif Decimal(entry.amount) != wanted["amount"]:
                entry.amount = wanted["amount"]
                entry.rate_snapshot = wanted["rate_snapshot"]
                result.updated += 1

        try:
            await self.session.flush()
        except StaleDataError as e:
            raise ConflictError(
                f"Automatic entries of period {period.period_id} changed concurrently"
            ) from e

        for key, values in desired.items():
            if key in existing:
                continue
            stmt = insert_ignore(self.session, CompensableEntry, ["dedupe_key"]).values(
                dedupe_key=key, **values
            )
            inserted = await self.session.execute(stmt)
            if inserted.rowcount:
                result.created += 1

        logger.info(
            "Deduction sync for period %s: %d monthly employees, %d created, "
            "%d updated, %d removed",
            period.period_id,
            len(monthly_rates),
            result.created,
            result.updated,
            result.removed,
        )
        return result

    async def _monthly_employees(self, period: PayrollPeriod) -> dict[UUID, RateSnapshot]:
        """Employees whose rate applicable at period end is monthly."""
        result = await self.session.execute(
            select(PayRate.employee_id)
            .join(Employee, Employee.employee_id == PayRate.employee_id)
            .where(PayRate.rate_type == RateType.MONTHLY.value, Employee.role != "owner")
            .distinct()
        )
        monthly: dict[UUID, RateSnapshot] = {}
        for employee_id in result.scalars().all():
            rate = await self.resolver.resolve(employee_id, period.period_end)
            if rate is not None and rate.rate_type == RateType.MONTHLY:
                monthly[employee_id] = rate
        return monthly

    async def _desired_entries(
        self,
        period: PayrollPeriod,
        monthly_rates: dict[UUID, RateSnapshot],
    ) -> dict[str, dict[str, Any]]:
        """Column values of every automatic entry the period should hold, by key."""
        desired: dict[str, dict[str, Any]] = {}
        if not monthly_rates:
            return desired

        for employee_id, rate in monthly_rates.items():
            base = semi_monthly_base(rate.amount)
            if base <= 0:
                continue
            desired[monthly_entry_key(employee_id, period.period_id)] = self._values(
                period,
                employee_id,
                entry_type=EntryType.EARNING,
                category=RateType.MONTHLY.value,
                amount=base,
                source=EntrySource.MONTHLY_BASE_AUTO,
                rate=rate,
                description=f"Monthly base for period {period.period_id}",
            )

        if self.deduction_amount <= 0:
            return desired

        scheduled = await self._scheduled_days(period, list(monthly_rates))
        worked = await self._worked_days(period, list(monthly_rates))
        for employee_id, work_date in sorted(scheduled - worked, key=lambda d: (str(d[0]), d[1])):
            desired[missed_day_key(employee_id, work_date)] = self._values(
                period,
                employee_id,
                entry_type=EntryType.DEDUCTION,
                category=MISSED_DAY_CATEGORY,
                amount=-self.deduction_amount,
                source=EntrySource.MISSED_DAY_AUTO,
                rate=monthly_rates[employee_id],
                work_date=work_date,
                description=f"Missed scheduled day {work_date.isoformat()}",
            )
        return desired

    def _values(
        self,
        period: PayrollPeriod,
        employee_id: UUID,
        *,
        entry_type: EntryType,
        category: str,
        amount: Decimal,
        source: EntrySource,
        rate: RateSnapshot,
        description: str,
        work_date: date | None = None,
    ) -> dict[str, Any]:
        return {
            "period_id": period.period_id,
            "employee_id": employee_id,
            "entry_type": entry_type.value,
            "category": category,
            "amount": amount,
            "work_date": work_date,
            "rate_snapshot": rate.to_dict(),
            "source": source.value,
            "description": description,
            "employee_approved": False,
            "admin_approved": False,
        }

    async def _scheduled_days(
        self, period: PayrollPeriod, employee_ids: list[UUID]
    ) -> set[tuple[UUID, date]]:
        result = await self.session.execute(
            select(ScheduledWorkDay.employee_id, ScheduledWorkDay.work_date).where(
                ScheduledWorkDay.employee_id.in_(employee_ids),
                ScheduledWorkDay.work_date >= period.period_start,
                ScheduledWorkDay.work_date <= period.period_end,
            )
        )
        return {(row.employee_id, row.work_date) for row in result}

    async def _worked_days(
        self, period: PayrollPeriod, employee_ids: list[UUID]
    ) -> set[tuple[UUID, date]]:
        """Days with a completed job or a closed clock event."""
        worked: set[tuple[UUID, date]] = set()

        jobs = await self.session.execute(
            select(JobAssignment.employee_id, Job.service_date)
            .join(Job, Job.job_id == JobAssignment.job_id)
            .where(
                JobAssignment.employee_id.in_(employee_ids),
                Job.completed.is_(True),
                Job.service_date >= period.period_start,
                Job.service_date <= period.period_end,
            )
        )
        worked.update((row.employee_id, row.service_date) for row in jobs)

        start, end = period_for_id(period.period_id).clock_range()
        events = await self.session.execute(
            select(ClockEvent).where(
                ClockEvent.employee_id.in_(employee_ids),
                ClockEvent.clock_in >= start,
                ClockEvent.clock_in < end,
                ClockEvent.clock_out.is_not(None),
            )
        )
        worked.update((e.employee_id, e.work_date) for e in events.scalars().all())
        return worked

    async def _existing_auto_entries(self, period_id: str) -> dict[str, CompensableEntry]:
        result = await self.session.execute(
            select(CompensableEntry).where(
                CompensableEntry.period_id == period_id,
                CompensableEntry.source.in_(AUTO_SOURCES),
            )
        )
        return {e.dedupe_key: e for e in result.scalars().all() if e.dedupe_key}

    async def _locked_run_ids(self) -> set[str]:
        result = await self.session.execute(
            select(PayrollPeriod.period_id).where(
                PayrollPeriod.status == PeriodStatus.LOCKED.value
            )
        )
        return set(result.scalars().all())
