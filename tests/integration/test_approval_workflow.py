"""Employee and administrator approval of entries."""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import select

from helpers import FIRST_PERIOD, SECOND_PERIOD, at
from payroll_recon.exceptions import (
    EntryClaimedError,
    LockedPeriodError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from payroll_recon.models import AuditEvent, CompensableEntry, PayrollPeriod
from payroll_recon.services.approval_service import ApprovalService
from payroll_recon.services.authorization import Actor, Role
from payroll_recon.services.sync_service import EntrySynchronizer

pytestmark = pytest.mark.asyncio


async def job_entries(session, seed, count: int = 1):
    """Sync per-visit job entries for one employee; returns (employee, entries)."""
    alice = await seed.employee()
    await seed.rate(alice, "per_visit", "75")
    for day in range(count):
        await seed.job(date(2026, 1, 5 + day), [alice])
    await EntrySynchronizer(session).sync_jobs_for_period(FIRST_PERIOD)
    result = await session.execute(
        select(CompensableEntry).order_by(CompensableEntry.work_date)
    )
    return alice, list(result.scalars().all())


class TestApproveEntries:
    async def test_admin_approves_into_run(self, session, seed, admin):
        _, entries = await job_entries(session, seed, count=2)

        result = await ApprovalService(session).approve_entries(
            FIRST_PERIOD, [e.entry_id for e in entries], admin
        )

        assert result.run_id == FIRST_PERIOD
        assert result.approved == 2
        assert result.already_approved == 0
        for entry in entries:
            assert entry.admin_approved is True
            assert entry.approved_in_run_id == FIRST_PERIOD

    async def test_reapproval_is_noop(self, session, seed, admin):
        _, entries = await job_entries(session, seed)
        service = ApprovalService(session)

        await service.approve_entries(FIRST_PERIOD, [entries[0].entry_id], admin)
        again = await service.approve_entries(FIRST_PERIOD, [entries[0].entry_id], admin)

        assert again.approved == 0
        assert again.already_approved == 1

    async def test_writes_audit_event(self, session, seed, owner):
        _, entries = await job_entries(session, seed)

        await ApprovalService(session).approve_entries(
            FIRST_PERIOD, [entries[0].entry_id], owner
        )
        await session.flush()

        event = (
            await session.execute(
                select(AuditEvent).where(AuditEvent.action == "admin_approved")
            )
        ).scalar_one()
        assert event.actor_id == owner.actor_id
        assert event.entity_id == str(entries[0].entry_id)
        assert event.before_json["admin_approved"] is False
        assert event.after_json["approved_in_run_id"] == FIRST_PERIOD

    async def test_employee_cannot_admin_approve(self, session, seed):
        alice, entries = await job_entries(session, seed)
        actor = Actor(actor_id=str(alice.employee_id), role=Role.EMPLOYEE)

        with pytest.raises(PermissionDeniedError):
            await ApprovalService(session).approve_entries(
                FIRST_PERIOD, [entries[0].entry_id], actor
            )

        assert entries[0].admin_approved is False

    async def test_entry_claimed_by_other_run(self, session, seed, admin):
        _, entries = await job_entries(session, seed)
        service = ApprovalService(session)
        await service.approve_entries(FIRST_PERIOD, [entries[0].entry_id], admin)

        with pytest.raises(EntryClaimedError) as exc_info:
            await service.approve_entries(SECOND_PERIOD, [entries[0].entry_id], admin)

        assert exc_info.value.claimed_run_id == FIRST_PERIOD
        assert entries[0].approved_in_run_id == FIRST_PERIOD

    async def test_batch_is_all_or_nothing(self, session, seed, admin):
        _, entries = await job_entries(session, seed, count=2)
        claimed, fresh = entries
        service = ApprovalService(session)
        await service.approve_entries(FIRST_PERIOD, [claimed.entry_id], admin)

        with pytest.raises(EntryClaimedError):
            await service.approve_entries(
                SECOND_PERIOD, [fresh.entry_id, claimed.entry_id], admin
            )

        assert fresh.admin_approved is False
        assert fresh.approved_in_run_id is None

    async def test_unknown_entry(self, session, seed, admin):
        _, entries = await job_entries(session, seed)

        with pytest.raises(NotFoundError):
            await ApprovalService(session).approve_entries(
                FIRST_PERIOD, [entries[0].entry_id, uuid4()], admin
            )

        assert entries[0].admin_approved is False

    async def test_requires_employee_approval_when_configured(self, session, seed, admin):
        _, entries = await job_entries(session, seed)

        with pytest.raises(ValidationError, match="not been approved by the employee"):
            await ApprovalService(session).approve_entries(
                FIRST_PERIOD,
                [entries[0].entry_id],
                admin,
                require_employee_approval=True,
            )

    async def test_clock_entries_are_pre_approved_by_employee(self, session, seed, admin):
        alice = await seed.employee()
        await seed.rate(alice, "hourly", "20")
        await seed.clock(alice, at(date(2026, 1, 5), 9), at(date(2026, 1, 5), 13))
        await EntrySynchronizer(session).sync_clock_events(
            at(date(2026, 1, 1), 0), at(date(2026, 1, 16), 0)
        )
        entry = (await session.execute(select(CompensableEntry))).scalar_one()

        result = await ApprovalService(session).approve_entries(
            FIRST_PERIOD, [entry.entry_id], admin, require_employee_approval=True
        )

        assert result.approved == 1

    async def test_locked_run_rejects_approval(self, session, seed, admin):
        _, entries = await job_entries(session, seed)
        await EntrySynchronizer(session).sync_jobs_for_period(SECOND_PERIOD)
        period = await session.get(PayrollPeriod, SECOND_PERIOD)
        period.status = "locked"
        await session.flush()

        with pytest.raises(LockedPeriodError):
            await ApprovalService(session).approve_entries(
                SECOND_PERIOD, [entries[0].entry_id], admin
            )

    async def test_empty_batch_rejected(self, session, admin):
        with pytest.raises(ValidationError):
            await ApprovalService(session).approve_entries(FIRST_PERIOD, [], admin)


class TestEmployeeApproval:
    async def test_employee_approves_own_entries(self, session, seed):
        alice, entries = await job_entries(session, seed, count=2)
        actor = Actor(actor_id=str(alice.employee_id), role=Role.EMPLOYEE)

        result = await ApprovalService(session).employee_approve_entries(
            actor, [e.entry_id for e in entries]
        )

        assert result.run_id is None
        assert result.approved == 2
        assert all(e.employee_approved for e in entries)
        assert not any(e.admin_approved for e in entries)

    async def test_cannot_approve_someone_elses_entry(self, session, seed):
        _, entries = await job_entries(session, seed)
        bob = await seed.employee("Bob")
        actor = Actor(actor_id=str(bob.employee_id), role=Role.EMPLOYEE)

        with pytest.raises(PermissionDeniedError):
            await ApprovalService(session).employee_approve_entries(
                actor, [entries[0].entry_id]
            )

        assert entries[0].employee_approved is False

    async def test_unprivileged_caller_is_rejected(self, session, seed):
        alice, entries = await job_entries(session, seed)
        actor = Actor(actor_id=str(alice.employee_id), role=Role.UNPRIVILEGED)

        with pytest.raises(PermissionDeniedError):
            await ApprovalService(session).employee_approve_entries(
                actor, [entries[0].entry_id]
            )
