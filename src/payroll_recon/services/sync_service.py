"""Entry synchronization: completed jobs and clock events into pay entries."""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payroll_recon.calculators.earnings import calculate_earning, clock_hours
from payroll_recon.calculators.periods import period_for_id, period_for_work_date
from payroll_recon.calculators.rate_resolver import RateResolver
from payroll_recon.calculators.types import (
    ClockSyncResult,
    EarningCalculation,
    EntrySource,
    EntryType,
    JobSyncResult,
    RateSnapshot,
    RateType,
    SyncFailure,
)
from payroll_recon.database import insert_ignore
from payroll_recon.exceptions import LockedPeriodError, NotFoundError, ValidationError
from payroll_recon.models import (
    ClockEvent,
    CompensableEntry,
    Employee,
    Job,
    JobAssignment,
    PayrollPeriod,
)
from payroll_recon.services.period_service import PeriodService, assert_period_mutable

logger = logging.getLogger(__name__)


def job_entry_key(employee_id: UUID, job_id: UUID) -> str:
    return f"job:{employee_id}:{job_id}"


def clock_entry_key(employee_id: UUID, work_date: date, job_id: UUID | None) -> str:
    return f"clock:{employee_id}:{work_date.isoformat()}:{job_id or '-'}"


class EntrySynchronizer:
    """Turns work evidence into compensable entries.

    Key invariants:
    1. One entry per (employee, job) and per (employee, day, job) clock pair,
       enforced by the unique dedupe_key
    2. Inserts are ON CONFLICT DO NOTHING, so concurrent and repeated syncs
       converge on the same rows
    3. A missing rate never becomes a zero entry; the employee is reported
    4. One bad item never aborts the batch; it runs in its own SAVEPOINT
    5. A job is paid once per employee: whichever of job sync and clock
       sync reaches an (employee, job) pair first owns it
    """

    def __init__(self, session: AsyncSession, resolver: RateResolver | None = None):
        self.session = session
        self.resolver = resolver or RateResolver(session)
        self.periods = PeriodService(session)
        self._employees: dict[UUID, Employee | None] = {}

    # ----- Jobs -----

    async def sync_jobs_for_period(self, period_id: str) -> JobSyncResult:
        """Create entries for every completed job in the period window.

        Raises:
            ValidationError: If period_id is not a valid pay date
            LockedPeriodError: If the period is locked
        """
        period = await self.periods.ensure_period_for_id(period_id)
        assert_period_mutable(period, "sync jobs")

        result = JobSyncResult(period_id=period.period_id)
        missing: set[UUID] = set()
        existing_keys = await self._existing_keys(period.period_id)

        for job in await self._completed_jobs(period.period_start, period.period_end):
            result.processed_jobs += 1
            try:
                async with self.session.begin_nested():
                    created = await self._sync_job(period, job, existing_keys, missing)
            except Exception as e:
                logger.exception("Failed to sync job %s", job.job_id)
                result.errors.append(SyncFailure(item_id=str(job.job_id), reason=str(e)))
                result.skipped_jobs += 1
                continue

            if created:
                result.created_entries += created
            else:
                result.skipped_jobs += 1

        result.missing_rate_employee_ids = sorted(missing, key=str)
        logger.info(
            "Job sync for period %s: %d jobs, %d entries created, %d skipped, "
            "%d employees missing rates",
            period.period_id,
            result.processed_jobs,
            result.created_entries,
            result.skipped_jobs,
            len(result.missing_rate_employee_ids),
        )
        return result

    async def sync_job(self, job_id: UUID) -> JobSyncResult:
        """Create entries for one completed job, e.g. right after it completes.

        The job lands in the period of its service date, created on demand.
        Uses the same dedupe keys as the period batch, so the two never
        double up.

        Raises:
            NotFoundError: If the job does not exist
            ValidationError: If the job is not completed
            LockedPeriodError: If the job's period is locked
        """
        job = await self._get_job(job_id)
        if not job.completed:
            raise ValidationError(f"Job {job_id} is not completed")

        period = await self.periods.ensure_period(period_for_work_date(job.service_date))
        assert_period_mutable(period, "sync jobs")

        result = JobSyncResult(period_id=period.period_id, processed_jobs=1)
        missing: set[UUID] = set()
        existing_keys = await self._existing_keys(period.period_id)

        result.created_entries = await self._sync_job(period, job, existing_keys, missing)
        if not result.created_entries:
            result.skipped_jobs = 1
        result.missing_rate_employee_ids = sorted(missing, key=str)
        logger.info(
            "Job sync for job %s in period %s: %d entries created",
            job_id,
            period.period_id,
            result.created_entries,
        )
        return result

    async def _sync_job(
        self,
        period: PayrollPeriod,
        job: Job,
        existing_keys: set[str],
        missing: set[UUID],
    ) -> int:
        """Create the missing entries of one job. Returns count created."""
        created = 0
        hours = Decimal(job.scheduled_duration_hours or 0)
        clocked = await self._clocked_employee_ids(job.job_id)

        for employee_id in job.employee_ids:
            if await self._is_owner(employee_id):
                continue

            key = job_entry_key(employee_id, job.job_id)
            if key in existing_keys:
                continue
            # Already paid from the employee's clock event for this job
            if employee_id in clocked:
                continue

            rate = await self.resolver.resolve(employee_id, job.service_date, job.location_id)
            if rate is None:
                missing.add(employee_id)
                continue
            # Monthly staff are paid through the periodic base earning
            if rate.rate_type == RateType.MONTHLY:
                continue

            calc = calculate_earning(rate, hours)
            if not calc.is_payable:
                continue

            inserted = await self._insert_entry(
                key,
                period_id=period.period_id,
                employee_id=employee_id,
                rate=rate,
                calc=calc,
                source=EntrySource.JOB_SYNC,
                job_id=job.job_id,
                work_date=job.service_date,
                employee_approved=False,
                description=f"Job {job.job_id} on {job.service_date.isoformat()}",
            )
            existing_keys.add(key)
            if inserted:
                created += 1

        return created

    async def _completed_jobs(self, start: date, end: date) -> list[Job]:
        result = await self.session.execute(
            select(Job)
            .options(selectinload(Job.assignments))
            .where(
                Job.completed.is_(True),
                Job.service_date >= start,
                Job.service_date <= end,
            )
            .order_by(Job.service_date, Job.job_id)
        )
        return list(result.scalars().all())

    async def _get_job(self, job_id: UUID) -> Job:
        job = await self.session.scalar(
            select(Job).options(selectinload(Job.assignments)).where(Job.job_id == job_id)
        )
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    async def _clocked_employee_ids(self, job_id: UUID) -> set[UUID]:
        result = await self.session.execute(
            select(CompensableEntry.employee_id).where(
                CompensableEntry.job_id == job_id,
                CompensableEntry.source == EntrySource.CLOCK_SYNC.value,
            )
        )
        return set(result.scalars().all())

    # ----- Clock events -----

    async def sync_clock_events(self, start: datetime, end: datetime) -> ClockSyncResult:
        """Create entries for closed clock events with clock_in in [start, end).

        Each event lands in the period of its clock-in day. Events whose
        period is locked are reported in ``errors`` and skipped.
        """
        result = ClockSyncResult()
        missing: set[UUID] = set()

        events = await self.session.execute(
            select(ClockEvent)
            .where(ClockEvent.clock_in >= start, ClockEvent.clock_in < end)
            .order_by(ClockEvent.clock_in, ClockEvent.clock_event_id)
        )

        for event in events.scalars().all():
            result.processed_events += 1

            # Open shifts are picked up by a later sync, once closed
            if event.is_open or await self._is_owner(event.employee_id):
                result.skipped_events += 1
                continue

            try:
                async with self.session.begin_nested():
                    created = await self._sync_clock_event(event, missing, result.errors)
            except LockedPeriodError as e:
                result.errors.append(
                    SyncFailure(item_id=str(event.clock_event_id), reason=str(e))
                )
                result.skipped_events += 1
                continue
            except Exception as e:
                logger.exception("Failed to sync clock event %s", event.clock_event_id)
                result.errors.append(
                    SyncFailure(item_id=str(event.clock_event_id), reason=str(e))
                )
                result.skipped_events += 1
                continue

            if created:
                result.created_entries += 1
            else:
                result.skipped_events += 1

        result.missing_rate_employee_ids = sorted(missing, key=str)
        logger.info(
            "Clock sync %s..%s: %d events, %d entries created, %d skipped",
            start.isoformat(),
            end.isoformat(),
            result.processed_events,
            result.created_entries,
            result.skipped_events,
        )
        return result

    async def _sync_clock_event(
        self,
        event: ClockEvent,
        missing: set[UUID],
        errors: list[SyncFailure],
    ) -> bool:
        """Create the entry for one closed clock event. Returns True if created.

        A shift that finds its slot taken by another event of the same day
        is reported in ``errors``; its hours are not paid.
        """
        work_date = event.work_date
        period = await self.periods.ensure_period(period_for_work_date(work_date))
        assert_period_mutable(period, "sync clock events")

        job_id = await self._match_job(event)
        key = clock_entry_key(event.employee_id, work_date, job_id)
        claim = (
            await self.session.execute(
                select(CompensableEntry.entry_id, CompensableEntry.clock_event_id).where(
                    CompensableEntry.dedupe_key == key
                )
            )
        ).first()
        if claim is not None:
            if claim.clock_event_id != event.clock_event_id:
                logger.warning(
                    "Clock event %s of employee %s on %s has no unclaimed job; "
                    "its hours were not paid",
                    event.clock_event_id,
                    event.employee_id,
                    work_date.isoformat(),
                )
                errors.append(
                    SyncFailure(
                        item_id=str(event.clock_event_id),
                        reason=(
                            f"clock slot {key} is already paid from clock event "
                            f"{claim.clock_event_id}"
                        ),
                    )
                )
            return False

        # Job sync already paid this employee for the matched job
        if job_id is not None and await self._key_exists(
            job_entry_key(event.employee_id, job_id)
        ):
            return False

        rate = await self.resolver.resolve(event.employee_id, work_date, event.location_id)
        if rate is None:
            missing.add(event.employee_id)
            return False
        if rate.rate_type == RateType.MONTHLY:
            return False

        calc = calculate_earning(rate, clock_hours(event.clock_in, event.clock_out))
        if not calc.is_payable:
            return False

        return await self._insert_entry(
            key,
            period_id=period.period_id,
            employee_id=event.employee_id,
            rate=rate,
            calc=calc,
            source=EntrySource.CLOCK_SYNC,
            job_id=job_id,
            clock_event_id=event.clock_event_id,
            work_date=work_date,
            employee_approved=True,
            description=f"Clocked time on {work_date.isoformat()}",
        )

    async def _match_job(self, event: ClockEvent) -> UUID | None:
        """Pick the employee's job assignment that this clock event belongs to.

        Same-location jobs come first. A job already claimed by another clock
        event of the same day is passed over, so two shifts at two jobs yield
        two entries. When every job is claimed the first one is returned and
        the caller reports the event as unpaid.
        """
        result = await self.session.execute(
            select(Job)
            .join(JobAssignment, JobAssignment.job_id == Job.job_id)
            .where(
                JobAssignment.employee_id == event.employee_id,
                Job.service_date == event.work_date,
            )
        )
        jobs = sorted(
            result.scalars().all(),
            key=lambda j: (j.location_id != event.location_id, str(j.job_id)),
        )
        if not jobs:
            return None

        for job in jobs:
            claimed_by = await self.session.scalar(
                select(CompensableEntry.clock_event_id).where(
                    CompensableEntry.dedupe_key
                    == clock_entry_key(event.employee_id, event.work_date, job.job_id)
                )
            )
            if claimed_by is None or claimed_by == event.clock_event_id:
                return job.job_id
        return jobs[0].job_id

    # ----- Readiness -----

    async def find_missing_rate_employee_ids(self, period_id: str) -> list[UUID]:
        """Employees with work in the period and no applicable pay rate.

        Covers completed jobs and closed clock events of the window. A
        non-empty result blocks finalization.
        """
        window = period_for_id(period_id)
        missing: set[UUID] = set()

        for job in await self._completed_jobs(window.period_start, window.period_end):
            await self._collect_missing_for_job(job, missing)

        start, end = window.clock_range()
        events = await self.session.execute(
            select(ClockEvent).where(
                ClockEvent.clock_in >= start,
                ClockEvent.clock_in < end,
                ClockEvent.clock_out.is_not(None),
            )
        )
        for event in events.scalars().all():
            if event.employee_id in missing or await self._is_owner(event.employee_id):
                continue
            if not await self.resolver.has_rate(
                event.employee_id, event.work_date, event.location_id
            ):
                missing.add(event.employee_id)

        return sorted(missing, key=str)

    async def missing_rate_employee_ids_for_job(self, job_id: UUID) -> list[UUID]:
        """Assigned employees of one job with no rate on its service date.

        Raises:
            NotFoundError: If the job does not exist
        """
        missing: set[UUID] = set()
        await self._collect_missing_for_job(await self._get_job(job_id), missing)
        return sorted(missing, key=str)

    async def _collect_missing_for_job(self, job: Job, missing: set[UUID]) -> None:
        for employee_id in job.employee_ids:
            if employee_id in missing or await self._is_owner(employee_id):
                continue
            if not await self.resolver.has_rate(employee_id, job.service_date, job.location_id):
                missing.add(employee_id)

    # ----- Helpers -----

    async def _insert_entry(
        self,
        dedupe_key: str,
        *,
        period_id: str,
        employee_id: UUID,
        rate: RateSnapshot,
        calc: EarningCalculation,
        source: EntrySource,
        work_date: date,
        employee_approved: bool,
        description: str,
        job_id: UUID | None = None,
        clock_event_id: UUID | None = None,
    ) -> bool:
        """Insert one earning entry. Returns False if the key already existed."""
        values: dict[str, Any] = {
            "period_id": period_id,
            "employee_id": employee_id,
            "entry_type": EntryType.EARNING.value,
            "category": rate.rate_type.value,
            "amount": calc.amount,
            "hours": calc.hours,
            "units": calc.units,
            "job_id": job_id,
            "clock_event_id": clock_event_id,
            "work_date": work_date,
            "rate_snapshot": rate.to_dict(),
            "source": source.value,
            "description": description,
            "employee_approved": employee_approved,
            "admin_approved": False,
            "dedupe_key": dedupe_key,
        }
        stmt = insert_ignore(self.session, CompensableEntry, ["dedupe_key"]).values(**values)
        result = await self.session.execute(stmt)
        return bool(result.rowcount)

    async def _existing_keys(self, period_id: str) -> set[str]:
        result = await self.session.execute(
            select(CompensableEntry.dedupe_key).where(
                CompensableEntry.period_id == period_id,
                CompensableEntry.dedupe_key.is_not(None),
            )
        )
        return set(result.scalars().all())

    async def _key_exists(self, dedupe_key: str) -> bool:
        entry_id = await self.session.scalar(
            select(CompensableEntry.entry_id).where(
                CompensableEntry.dedupe_key == dedupe_key
            )
        )
        return entry_id is not None

    async def _is_owner(self, employee_id: UUID) -> bool:
        if employee_id not in self._employees:
            self._employees[employee_id] = await self.session.get(Employee, employee_id)
        employee = self._employees[employee_id]
        return employee is not None and employee.is_owner
