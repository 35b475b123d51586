"""Payroll period lifecycle: lazy creation, lookups, guarded transitions."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from payroll_recon.calculators.periods import PeriodWindow, period_for_id
from payroll_recon.calculators.totals import aggregate_totals
from payroll_recon.database import insert_ignore
from payroll_recon.exceptions import (
    ConflictError,
    InvalidTransitionError,
    LockedPeriodError,
    NotFoundError,
    ValidationError,
)
from payroll_recon.models import CompensableEntry, PayrollPeriod
from payroll_recon.services.audit_service import AuditTrail
from payroll_recon.services.authorization import Actor, require_elevated
from payroll_recon.services.state_machine import PeriodStateMachine, PeriodStatus

logger = logging.getLogger(__name__)


def assert_period_mutable(period: PayrollPeriod, operation: str) -> None:
    """Refuse any write scoped to a locked period."""
    if not PeriodStateMachine.can_modify_entries(period.status):
        raise LockedPeriodError(period.period_id, operation)


class PeriodService:
    """Service for payroll period records.

    Periods are created lazily the first time anything needs to be synced
    into them. Creation is an insert-or-ignore keyed on the period id, so
    concurrent callers converge on one row.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditTrail(session)

    async def ensure_period(self, window: PeriodWindow) -> PayrollPeriod:
        """Create the period if it does not exist yet and return it."""
        stmt = insert_ignore(self.session, PayrollPeriod, ["period_id"]).values(
            period_id=window.period_id,
            period_start=window.period_start,
            period_end=window.period_end,
            pay_date=window.pay_date,
            status=PeriodStatus.DRAFT.value,
            version=1,
        )
        result = await self.session.execute(stmt)
        if result.rowcount:
            logger.info("Created payroll period %s", window.period_id)

        period = await self.session.get(PayrollPeriod, window.period_id)
        if period is None:
            raise NotFoundError("Payroll period", window.period_id)
        return period

    async def ensure_period_for_id(self, period_id: str) -> PayrollPeriod:
        """Load a period, creating it from its pay-date id when missing."""
        period = await self.session.get(PayrollPeriod, period_id)
        if period is not None:
            return period
        try:
            window = period_for_id(period_id)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return await self.ensure_period(window)

    async def get_period(self, period_id: str) -> PayrollPeriod:
        """Load a period or raise NotFoundError."""
        period = await self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise NotFoundError("Payroll period", period_id)
        return period

    async def get_mutable_period(self, period_id: str, operation: str) -> PayrollPeriod:
        """Load a period and refuse if it is locked."""
        period = await self.get_period(period_id)
        assert_period_mutable(period, operation)
        return period

    async def list_periods(self, limit: int = 20) -> list[PayrollPeriod]:
        """Most recent periods first."""
        result = await self.session.execute(
            select(PayrollPeriod).order_by(PayrollPeriod.pay_date.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def list_entries(
        self,
        period_id: str,
        employee_id: UUID | None = None,
    ) -> list[CompensableEntry]:
        """Entries of a period, optionally for one employee."""
        query = select(CompensableEntry).where(CompensableEntry.period_id == period_id)
        if employee_id is not None:
            query = query.where(CompensableEntry.employee_id == employee_id)
        query = query.order_by(CompensableEntry.created_at, CompensableEntry.entry_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_run_entries(self, run_id: str) -> list[CompensableEntry]:
        """Entries approved into a run (may come from earlier periods)."""
        result = await self.session.execute(
            select(CompensableEntry)
            .where(CompensableEntry.approved_in_run_id == run_id)
            .order_by(CompensableEntry.created_at, CompensableEntry.entry_id)
        )
        return list(result.scalars().all())

    async def transition(
        self,
        period_id: str,
        to_status: str,
        actor: Actor,
        reason: str | None = None,
    ) -> PayrollPeriod:
        """Move a period to a new status.

        Locking goes through the Finalizer only, which freezes totals and
        writes the expense record in the same transaction.

        Raises:
            PermissionDeniedError: If the actor is not elevated
            InvalidTransitionError: If the transition is not allowed
            ConflictError: If the period changed concurrently
        """
        require_elevated(actor, f"move period to '{to_status}'")
        period = await self.get_period(period_id)
        from_status = period.status

        if to_status == PeriodStatus.LOCKED:
            raise InvalidTransitionError(
                from_status, to_status, "use finalize to lock a period"
            )
        PeriodStateMachine.validate_transition(from_status, to_status)

        period.status = PeriodStatus(to_status).value
        try:
            await self.session.flush()
        except StaleDataError as e:
            raise ConflictError(
                f"Payroll period {period_id} was modified concurrently"
            ) from e

        if PeriodStateMachine.is_reopen(from_status, period.status):
            action = "reopened"
        else:
            action = f"status_change:{from_status}:{period.status}"

        after: dict[str, Any] = {"status": period.status}
        if reason:
            after["reason"] = reason
        self.audit.record(
            entity_type="payroll_period",
            entity_id=period_id,
            action=action,
            actor_id=actor.actor_id,
            before={"status": from_status},
            after=after,
        )
        return period

    async def summary(self, period_id: str) -> dict[str, Any]:
        """Live period totals, run totals and (when locked) frozen totals."""
        period = await self.get_period(period_id)
        entries = await self.list_entries(period_id)
        approved = await self.list_run_entries(period_id)

        return {
            "period_id": period.period_id,
            "status": period.status,
            "period_totals": aggregate_totals(entries).to_dict(),
            "run_totals": aggregate_totals(approved).to_dict(),
            "frozen_totals": period.totals_json,
        }
