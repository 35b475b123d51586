"""Employee and administrator approval of compensable entries."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from payroll_recon.calculators.types import ApprovalResult
from payroll_recon.config import get_settings
from payroll_recon.exceptions import (
    ConflictError,
    EntryClaimedError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from payroll_recon.models import CompensableEntry, PayrollPeriod
from payroll_recon.services.audit_service import AuditTrail
from payroll_recon.services.authorization import Actor, require_elevated, require_employee
from payroll_recon.services.period_service import PeriodService, assert_period_mutable

logger = logging.getLogger(__name__)


class ApprovalService:
    """Two-step entry approval.

    Employees confirm their own entries; an owner or admin then approves
    entries into a run (a period). An entry belongs to at most one run,
    which is what keeps it from being paid twice.

    Both operations validate every requested entry before writing any of
    them, so a batch either fully applies or changes nothing.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.periods = PeriodService(session)
        self.audit = AuditTrail(session)

    async def approve_entries(
        self,
        run_id: str,
        entry_ids: Iterable[UUID],
        actor: Actor,
        require_employee_approval: bool | None = None,
    ) -> ApprovalResult:
        """Approve entries into a run as an administrator.

        Raises:
            PermissionDeniedError: If the actor is not an owner or admin
            NotFoundError: If an entry does not exist
            LockedPeriodError: If the run or an entry's period is locked
            EntryClaimedError: If an entry is approved into another run
            ValidationError: If employee approval is required and missing
            ConflictError: If an entry changed concurrently
        """
        require_elevated(actor, "approve entries into a run")
        if require_employee_approval is None:
            require_employee_approval = get_settings().require_employee_approval

        run = await self.periods.ensure_period_for_id(run_id)
        assert_period_mutable(run, "approve entries")

        entries = await self._load_entries(entry_ids)
        await self._check_periods_mutable(entries, "approve entries")

        for entry in entries:
            if entry.approved_in_run_id is not None and entry.approved_in_run_id != run.period_id:
                raise EntryClaimedError(
                    entry.entry_id, entry.approved_in_run_id, run.period_id
                )
            if require_employee_approval and not entry.employee_approved:
                raise ValidationError(
                    f"Entry {entry.entry_id} has not been approved by the employee"
                )

        approved = 0
        already = 0
        for entry in entries:
            if entry.admin_approved and entry.approved_in_run_id == run.period_id:
                already += 1
                continue

            before = entry.snapshot()
            entry.admin_approved = True
            entry.approved_in_run_id = run.period_id
            self.audit.record(
                entity_type="compensable_entry",
                entity_id=entry.entry_id,
                action="admin_approved",
                actor_id=actor.actor_id,
                before=before,
                after=entry.snapshot(),
            )
            approved += 1

        await self._flush()
        logger.info(
            "Approved %d entries into run %s (%d already approved)",
            approved,
            run.period_id,
            already,
        )
        return ApprovalResult(run_id=run.period_id, approved=approved, already_approved=already)

    async def employee_approve_entries(
        self,
        actor: Actor,
        entry_ids: Iterable[UUID],
    ) -> ApprovalResult:
        """Confirm the caller's own entries.

        Raises:
            PermissionDeniedError: If the caller is not an employee or an
                entry belongs to someone else
            NotFoundError: If an entry does not exist
            LockedPeriodError: If an entry's period is locked
        """
        employee_id = require_employee(actor, "approve own entries")

        entries = await self._load_entries(entry_ids)
        for entry in entries:
            if entry.employee_id != employee_id:
                raise PermissionDeniedError(
                    "approve entries of another employee", actor.role.value
                )
        await self._check_periods_mutable(entries, "approve entries")

        approved = 0
        already = 0
        for entry in entries:
            if entry.employee_approved:
                already += 1
                continue
            entry.employee_approved = True
            self.audit.record(
                entity_type="compensable_entry",
                entity_id=entry.entry_id,
                action="employee_approved",
                actor_id=actor.actor_id,
                before={"employee_approved": False},
                after={"employee_approved": True},
            )
            approved += 1

        await self._flush()
        return ApprovalResult(run_id=None, approved=approved, already_approved=already)

    async def _load_entries(self, entry_ids: Iterable[UUID]) -> list[CompensableEntry]:
        """Load entries in request order, rejecting unknown ids."""
        ids = list(dict.fromkeys(entry_ids))
        if not ids:
            raise ValidationError("No entry ids given")

        result = await self.session.execute(
            select(CompensableEntry).where(CompensableEntry.entry_id.in_(ids))
        )
        by_id = {e.entry_id: e for e in result.scalars().all()}
        for entry_id in ids:
            if entry_id not in by_id:
                raise NotFoundError("Compensable entry", entry_id)
        return [by_id[entry_id] for entry_id in ids]

    async def _check_periods_mutable(
        self,
        entries: list[CompensableEntry],
        operation: str,
    ) -> None:
        period_ids = {e.period_id for e in entries}
        period_ids.update(e.approved_in_run_id for e in entries if e.approved_in_run_id)

        result = await self.session.execute(
            select(PayrollPeriod).where(PayrollPeriod.period_id.in_(period_ids))
        )
        for period in sorted(result.scalars().all(), key=lambda p: p.period_id):
            assert_period_mutable(period, operation)

    async def _flush(self) -> None:
        try:
            await self.session.flush()
        except StaleDataError as e:
            raise ConflictError("Entries were modified concurrently; retry") from e
