"""Entry synchronization: jobs and clock events into compensable entries."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from helpers import FIRST_PERIOD, SECOND_PERIOD, at
from payroll_recon.exceptions import LockedPeriodError, NotFoundError, ValidationError
from payroll_recon.models import CompensableEntry, PayrollPeriod
from payroll_recon.services.reconciliation import reconcile_period
from payroll_recon.services.sync_service import EntrySynchronizer

pytestmark = pytest.mark.asyncio


async def count_entries(session) -> int:
    return await session.scalar(select(func.count()).select_from(CompensableEntry))


async def lock(session, period_id: str) -> None:
    period = await session.get(PayrollPeriod, period_id)
    period.status = "locked"
    await session.flush()


class TestJobSync:
    """Completed jobs become one entry per assigned employee."""

    async def test_per_visit_job_creates_entry(self, session, seed):
        """Per-visit rate pays one unit at the flat rate."""
        alice = await seed.employee()
        rate = await seed.rate(alice, "per_visit", "75")
        job = await seed.job(date(2026, 1, 10), [alice])

        result = await EntrySynchronizer(session).sync_jobs_for_period(FIRST_PERIOD)

        assert result.processed_jobs == 1
        assert result.created_entries == 1
        assert result.skipped_jobs == 0
        assert result.missing_rate_employee_ids == []
        assert result.errors == []

        entry = (await session.execute(select(CompensableEntry))).scalar_one()
        assert entry.period_id == FIRST_PERIOD
        assert entry.employee_id == alice.employee_id
        assert entry.job_id == job.job_id
        assert entry.entry_type == "earning"
        assert entry.category == "per_visit"
        assert entry.amount == Decimal("75.00")
        assert entry.units == 1
        assert entry.source == "job_sync"
        assert entry.employee_approved is False
        assert entry.admin_approved is False
        assert entry.rate_snapshot["pay_rate_id"] == str(rate.pay_rate_id)
        assert entry.dedupe_key == f"job:{alice.employee_id}:{job.job_id}"

    async def test_hourly_job_uses_scheduled_duration(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "20")
        await seed.job(date(2026, 1, 10), [alice], hours="2.50")

        await EntrySynchronizer(session).sync_jobs_for_period(FIRST_PERIOD)

        entry = (await session.execute(select(CompensableEntry))).scalar_one()
        assert entry.amount == Decimal("50.00")
        assert entry.hours == Decimal("2.50")

    async def test_sync_is_idempotent(self, session, seed):
        """Re-running sync creates nothing new."""
        alice = await seed.employee()
        bob = await seed.employee("Bob")
        await seed.rate(alice, "per_visit", "75")
        await seed.rate(bob, "per_visit", "60")
        await seed.job(date(2026, 1, 10), [alice, bob])
        await seed.job(date(2026, 1, 12), [alice])

        synchronizer = EntrySynchronizer(session)
        first = await synchronizer.sync_jobs_for_period(FIRST_PERIOD)
        second = await EntrySynchronizer(session).sync_jobs_for_period(FIRST_PERIOD)

        assert first.created_entries == 3
        assert second.created_entries == 0
        assert second.skipped_jobs == 2
        assert await count_entries(session) == 3

    async def test_only_completed_jobs_in_window(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "per_visit", "75")
        await seed.job(date(2026, 1, 10), [alice], completed=False)
        await seed.job(date(2026, 1, 20), [alice])

        result = await EntrySynchronizer(session).sync_jobs_for_period(FIRST_PERIOD)

        assert result.processed_jobs == 0
        assert await count_entries(session) == 0

    async def test_missing_rate_is_reported_not_zeroed(self, session, seed):
        alice = await seed.employee()
        nora = await seed.employee("Nora")
        await seed.rate(alice, "per_visit", "75")
        await seed.job(date(2026, 1, 10), [alice, nora])

        result = await EntrySynchronizer(session).sync_jobs_for_period(FIRST_PERIOD)

        assert result.created_entries == 1
        assert result.missing_rate_employee_ids == [nora.employee_id]
        entries = (await session.execute(select(CompensableEntry))).scalars().all()
        assert [e.employee_id for e in entries] == [alice.employee_id]

    async def test_rate_effective_after_work_date_is_missing(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "per_visit", "75", effective_date=date(2026, 1, 11))
        await seed.job(date(2026, 1, 10), [alice])

        result = await EntrySynchronizer(session).sync_jobs_for_period(FIRST_PERIOD)

        assert result.missing_rate_employee_ids == [alice.employee_id]
        assert result.skipped_jobs == 1

    async def test_owner_is_skipped(self, session, seed):
        boss = await seed.employee("Boss", role="owner")
        await seed.rate(boss, "per_visit", "75")
        await seed.job(date(2026, 1, 10), [boss])

        result = await EntrySynchronizer(session).sync_jobs_for_period(FIRST_PERIOD)

        assert result.processed_jobs == 1
        assert result.skipped_jobs == 1
        assert await count_entries(session) == 0

    async def test_monthly_employee_gets_no_job_entry(self, session, seed):
        mia = await seed.employee("Mia")
        await seed.rate(mia, "monthly", "3000")
        await seed.job(date(2026, 1, 10), [mia])

        result = await EntrySynchronizer(session).sync_jobs_for_period(FIRST_PERIOD)

        assert result.created_entries == 0
        assert result.missing_rate_employee_ids == []

    async def test_location_rate_applies_to_job(self, session, seed):
        alice = await seed.employee()
        site = uuid4()
        await seed.rate(alice, "per_visit", "75")
        await seed.rate(alice, "per_visit", "90", location_id=site)
        await seed.job(date(2026, 1, 10), [alice], location_id=site)
        await seed.job(date(2026, 1, 11), [alice], location_id=uuid4())

        await EntrySynchronizer(session).sync_jobs_for_period(FIRST_PERIOD)

        amounts = sorted(
            (await session.execute(select(CompensableEntry.amount))).scalars().all()
        )
        assert amounts == [Decimal("75.00"), Decimal("90.00")]

    async def test_creates_period_lazily(self, session, seed):
        result = await EntrySynchronizer(session).sync_jobs_for_period(SECOND_PERIOD)

        period = await session.get(PayrollPeriod, SECOND_PERIOD)
        assert result.processed_jobs == 0
        assert period.status == "draft"
        assert period.period_start == date(2026, 1, 16)
        assert period.period_end == date(2026, 1, 31)

    async def test_invalid_period_id(self, session):
        with pytest.raises(ValidationError):
            await EntrySynchronizer(session).sync_jobs_for_period("2026-01-10")

    async def test_locked_period_rejects_sync(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "per_visit", "75")
        synchronizer = EntrySynchronizer(session)
        await synchronizer.sync_jobs_for_period(FIRST_PERIOD)
        await lock(session, FIRST_PERIOD)
        await seed.job(date(2026, 1, 10), [alice])

        with pytest.raises(LockedPeriodError) as exc_info:
            await synchronizer.sync_jobs_for_period(FIRST_PERIOD)

        assert exc_info.value.code == "PERIOD_LOCKED"
        assert await count_entries(session) == 0


class TestClockSync:
    """Closed clock events become hourly entries."""

    async def test_hourly_clock_event(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "20")
        day = date(2026, 1, 5)
        event = await seed.clock(alice, at(day, 9), at(day, 13, 30))

        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        result = await EntrySynchronizer(session).sync_clock_events(start, end)

        assert result.processed_events == 1
        assert result.created_entries == 1
        entry = (await session.execute(select(CompensableEntry))).scalar_one()
        assert entry.amount == Decimal("90.00")
        assert entry.hours == Decimal("4.50")
        assert entry.clock_event_id == event.clock_event_id
        assert entry.source == "clock_sync"
        assert entry.employee_approved is True
        assert entry.dedupe_key == f"clock:{alice.employee_id}:2026-01-05:-"

    async def test_clock_sync_is_idempotent(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "20")
        day = date(2026, 1, 5)
        await seed.clock(alice, at(day, 9), at(day, 17))

        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        await EntrySynchronizer(session).sync_clock_events(start, end)
        again = await EntrySynchronizer(session).sync_clock_events(start, end)

        assert again.created_entries == 0
        assert again.skipped_events == 1
        assert await count_entries(session) == 1

    async def test_open_event_is_skipped(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "20")
        await seed.clock(alice, at(date(2026, 1, 5), 9), None)

        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        result = await EntrySynchronizer(session).sync_clock_events(start, end)

        assert result.skipped_events == 1
        assert await count_entries(session) == 0

    async def test_range_is_half_open(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "20")
        await seed.clock(alice, at(date(2026, 1, 16), 0), at(date(2026, 1, 16), 4))

        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        result = await EntrySynchronizer(session).sync_clock_events(start, end)

        assert result.processed_events == 0

    async def test_event_lands_in_period_of_clock_in_day(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "20")
        await seed.clock(alice, at(date(2026, 1, 15), 22), at(date(2026, 1, 16), 2))

        start, end = at(date(2026, 1, 1), 0), at(date(2026, 2, 1), 0)
        await EntrySynchronizer(session).sync_clock_events(start, end)

        entry = (await session.execute(select(CompensableEntry))).scalar_one()
        assert entry.period_id == FIRST_PERIOD
        assert entry.amount == Decimal("80.00")

    async def test_two_jobs_same_day_give_two_entries(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "20")
        day = date(2026, 1, 5)
        north, south = uuid4(), uuid4()
        north_job = await seed.job(day, [alice], location_id=north)
        south_job = await seed.job(day, [alice], location_id=south)
        await seed.clock(alice, at(day, 8), at(day, 10), location_id=north)
        await seed.clock(alice, at(day, 13), at(day, 16), location_id=south)

        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        result = await EntrySynchronizer(session).sync_clock_events(start, end)

        assert result.created_entries == 2
        by_job = {
            e.job_id: e.amount
            for e in (await session.execute(select(CompensableEntry))).scalars().all()
        }
        assert by_job == {
            north_job.job_id: Decimal("40.00"),
            south_job.job_id: Decimal("60.00"),
        }

    async def test_second_unmatched_event_same_day_is_skipped(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "20")
        day = date(2026, 1, 5)
        await seed.clock(alice, at(day, 8), at(day, 10))
        second = await seed.clock(alice, at(day, 13), at(day, 16))

        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        result = await EntrySynchronizer(session).sync_clock_events(start, end)

        assert result.created_entries == 1
        assert result.skipped_events == 1
        assert [f.item_id for f in result.errors] == [str(second.clock_event_id)]

    async def test_shift_beyond_claimed_jobs_is_reported(self, session, seed):
        """Two shifts, one job: the second shift's hours are surfaced, not dropped."""
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "20")
        day = date(2026, 1, 5)
        job = await seed.job(day, [alice])
        first = await seed.clock(alice, at(day, 8), at(day, 10))
        second = await seed.clock(alice, at(day, 13), at(day, 16))

        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        result = await EntrySynchronizer(session).sync_clock_events(start, end)

        assert result.created_entries == 1
        assert len(result.errors) == 1
        assert result.errors[0].item_id == str(second.clock_event_id)
        assert str(first.clock_event_id) in result.errors[0].reason
        entry = (await session.execute(select(CompensableEntry))).scalar_one()
        assert entry.job_id == job.job_id
        assert entry.clock_event_id == first.clock_event_id

    async def test_resync_of_paid_event_reports_nothing(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "20")
        day = date(2026, 1, 5)
        await seed.job(day, [alice])
        await seed.clock(alice, at(day, 8), at(day, 10))

        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        synchronizer = EntrySynchronizer(session)
        await synchronizer.sync_clock_events(start, end)
        again = await synchronizer.sync_clock_events(start, end)

        assert again.errors == []
        assert again.skipped_events == 1

    async def test_locked_period_is_reported_per_event(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "20")
        synchronizer = EntrySynchronizer(session)
        await synchronizer.sync_jobs_for_period(FIRST_PERIOD)
        await lock(session, FIRST_PERIOD)
        locked_event = await seed.clock(alice, at(date(2026, 1, 5), 9), at(date(2026, 1, 5), 12))
        await seed.clock(alice, at(date(2026, 1, 20), 9), at(date(2026, 1, 20), 12))

        start, end = at(date(2026, 1, 1), 0), at(date(2026, 2, 1), 0)
        result = await synchronizer.sync_clock_events(start, end)

        assert result.processed_events == 2
        assert result.created_entries == 1
        assert [f.item_id for f in result.errors] == [str(locked_event.clock_event_id)]
        entry = (await session.execute(select(CompensableEntry))).scalar_one()
        assert entry.period_id == SECOND_PERIOD

    async def test_missing_rate_reported(self, session, seed):
        nora = await seed.employee("Nora")
        await seed.clock(nora, at(date(2026, 1, 5), 9), at(date(2026, 1, 5), 12))

        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        result = await EntrySynchronizer(session).sync_clock_events(start, end)

        assert result.missing_rate_employee_ids == [nora.employee_id]
        assert await count_entries(session) == 0


class TestFindMissingRates:
    async def test_lists_employees_with_unpaid_work(self, session, seed):
        alice = await seed.employee()
        nora = await seed.employee("Nora")
        owen = await seed.employee("Owen")
        boss = await seed.employee("Boss", role="owner")
        await seed.rate(alice, "per_visit", "75")
        await seed.job(date(2026, 1, 10), [alice, nora, boss])
        await seed.clock(owen, at(date(2026, 1, 6), 9), at(date(2026, 1, 6), 12))

        missing = await EntrySynchronizer(session).find_missing_rate_employee_ids(FIRST_PERIOD)

        assert missing == sorted([nora.employee_id, owen.employee_id], key=str)

    async def test_empty_when_everyone_has_a_rate(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "per_visit", "75")
        await seed.job(date(2026, 1, 10), [alice])

        assert await EntrySynchronizer(session).find_missing_rate_employee_ids(FIRST_PERIOD) == []

    async def test_for_one_job(self, session, seed):
        alice = await seed.employee()
        nora = await seed.employee("Nora")
        boss = await seed.employee("Boss", role="owner")
        await seed.rate(alice, "per_visit", "75")
        job = await seed.job(date(2026, 1, 10), [alice, nora, boss])
        await seed.job(date(2026, 1, 11), [alice])

        missing = await EntrySynchronizer(session).missing_rate_employee_ids_for_job(job.job_id)

        assert missing == [nora.employee_id]

    async def test_for_unknown_job(self, session):
        with pytest.raises(NotFoundError):
            await EntrySynchronizer(session).missing_rate_employee_ids_for_job(uuid4())


class TestJobAndClockExclusivity:
    """A job worked on the clock is paid once, whichever sync runs first."""

    async def seed_clocked_job(self, seed):
        """Hourly $18.50, a 3-hour job on Jan 5 and a 09:00-12:00 shift."""
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "18.50")
        day = date(2026, 1, 5)
        job = await seed.job(day, [alice], hours="3.00")
        event = await seed.clock(alice, at(day, 9), at(day, 12))
        return alice, job, event

    async def test_job_sync_first(self, session, seed):
        _, job, _ = await self.seed_clocked_job(seed)
        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        synchronizer = EntrySynchronizer(session)

        jobs = await synchronizer.sync_jobs_for_period(FIRST_PERIOD)
        clock = await synchronizer.sync_clock_events(start, end)

        assert jobs.created_entries == 1
        assert clock.created_entries == 0
        assert clock.skipped_events == 1
        assert clock.errors == []
        entry = (await session.execute(select(CompensableEntry))).scalar_one()
        assert entry.source == "job_sync"
        assert entry.job_id == job.job_id
        assert entry.amount == Decimal("55.50")

    async def test_clock_sync_first(self, session, seed):
        _, job, event = await self.seed_clocked_job(seed)
        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        synchronizer = EntrySynchronizer(session)

        clock = await synchronizer.sync_clock_events(start, end)
        jobs = await synchronizer.sync_jobs_for_period(FIRST_PERIOD)

        assert clock.created_entries == 1
        assert jobs.created_entries == 0
        assert jobs.skipped_jobs == 1
        entry = (await session.execute(select(CompensableEntry))).scalar_one()
        assert entry.source == "clock_sync"
        assert entry.job_id == job.job_id
        assert entry.clock_event_id == event.clock_event_id
        assert entry.amount == Decimal("55.50")

    async def test_single_job_sync_after_clock_sync(self, session, seed):
        _, job, _ = await self.seed_clocked_job(seed)
        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        synchronizer = EntrySynchronizer(session)

        await synchronizer.sync_clock_events(start, end)
        result = await synchronizer.sync_job(job.job_id)

        assert result.created_entries == 0
        assert await count_entries(session) == 1

    async def test_reconcile_pays_job_once(self, session, seed):
        alice, _, _ = await self.seed_clocked_job(seed)

        await reconcile_period(session, FIRST_PERIOD)
        await reconcile_period(session, FIRST_PERIOD)

        amounts = (
            await session.execute(
                select(CompensableEntry.amount).where(
                    CompensableEntry.employee_id == alice.employee_id
                )
            )
        ).scalars().all()
        assert sum(amounts, Decimal("0")) == Decimal("55.50")

    async def test_other_employee_on_job_still_paid(self, session, seed):
        """Only the clocked employee's share of the job is taken by clock sync."""
        alice = await seed.employee()
        bob = await seed.employee("Bob")
        await seed.rate(alice, "hourly", "18.50")
        await seed.rate(bob, "per_visit", "60")
        day = date(2026, 1, 5)
        await seed.job(day, [alice, bob], hours="3.00")
        await seed.clock(alice, at(day, 9), at(day, 12))
        start, end = at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        synchronizer = EntrySynchronizer(session)

        await synchronizer.sync_clock_events(start, end)
        jobs = await synchronizer.sync_jobs_for_period(FIRST_PERIOD)

        assert jobs.created_entries == 1
        sources = {
            e.employee_id: e.source
            for e in (await session.execute(select(CompensableEntry))).scalars().all()
        }
        assert sources == {alice.employee_id: "clock_sync", bob.employee_id: "job_sync"}


class TestSingleJobSync:
    """Syncing one job as it completes."""

    async def test_creates_entries_and_period(self, session, seed):
        alice = await seed.employee()
        bob = await seed.employee("Bob")
        await seed.rate(alice, "per_visit", "75")
        await seed.rate(bob, "hourly", "20")
        job = await seed.job(date(2026, 1, 20), [alice, bob], hours="1.50")

        result = await EntrySynchronizer(session).sync_job(job.job_id)

        assert result.period_id == SECOND_PERIOD
        assert result.processed_jobs == 1
        assert result.created_entries == 2
        assert result.skipped_jobs == 0
        assert await session.get(PayrollPeriod, SECOND_PERIOD) is not None
        amounts = {
            e.employee_id: e.amount
            for e in (await session.execute(select(CompensableEntry))).scalars().all()
        }
        assert amounts == {alice.employee_id: Decimal("75.00"), bob.employee_id: Decimal("30.00")}

    async def test_shares_dedupe_with_period_sync(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "per_visit", "75")
        job = await seed.job(date(2026, 1, 10), [alice])
        synchronizer = EntrySynchronizer(session)

        await synchronizer.sync_job(job.job_id)
        again = await synchronizer.sync_job(job.job_id)
        batch = await synchronizer.sync_jobs_for_period(FIRST_PERIOD)

        assert again.created_entries == 0
        assert again.skipped_jobs == 1
        assert batch.created_entries == 0
        assert await count_entries(session) == 1

    async def test_reports_missing_rate(self, session, seed):
        nora = await seed.employee("Nora")
        job = await seed.job(date(2026, 1, 10), [nora])

        result = await EntrySynchronizer(session).sync_job(job.job_id)

        assert result.missing_rate_employee_ids == [nora.employee_id]
        assert await count_entries(session) == 0

    async def test_unknown_job(self, session):
        with pytest.raises(NotFoundError):
            await EntrySynchronizer(session).sync_job(uuid4())

    async def test_incomplete_job_rejected(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "per_visit", "75")
        job = await seed.job(date(2026, 1, 10), [alice], completed=False)

        with pytest.raises(ValidationError):
            await EntrySynchronizer(session).sync_job(job.job_id)

    async def test_locked_period_rejected(self, session, seed):
        alice = await seed.employee()
        await seed.rate(alice, "per_visit", "75")
        job = await seed.job(date(2026, 1, 10), [alice])
        await EntrySynchronizer(session).sync_jobs_for_period(FIRST_PERIOD)
        await lock(session, FIRST_PERIOD)

        with pytest.raises(LockedPeriodError):
            await EntrySynchronizer(session).sync_job(job.job_id)
