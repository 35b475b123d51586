"""Manual entries and administrative overrides."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from payroll_recon.calculators.earnings import round_to_cents
from payroll_recon.calculators.types import (
    DEDUCTION_CATEGORIES,
    EARNING_CATEGORIES,
    EntrySource,
    EntryType,
)
from payroll_recon.exceptions import (
    ConflictError,
    LockedPeriodError,
    NotFoundError,
    ValidationError,
)
from payroll_recon.models import CompensableEntry, Employee, PayrollPeriod
from payroll_recon.models.base import utcnow
from payroll_recon.services.audit_service import AuditTrail
from payroll_recon.services.authorization import Actor, require_elevated
from payroll_recon.services.period_service import PeriodService, assert_period_mutable

logger = logging.getLogger(__name__)


def _to_decimal(value: Any, field: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid {field}: {value!r}") from e


class EntryService:
    """Entries written by people rather than by sync."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.periods = PeriodService(session)
        self.audit = AuditTrail(session)

    async def add_manual_entry(
        self,
        actor: Actor,
        period_id: str,
        employee_id: UUID,
        entry_type: str,
        category: str,
        amount: Decimal,
        description: str | None = None,
        hours: Decimal | None = None,
        units: int | None = None,
        work_date: date | None = None,
    ) -> CompensableEntry:
        """Add a manual earning or deduction.

        Deductions may be given as a positive or negative amount; they are
        always stored negative.

        Raises:
            PermissionDeniedError: If the actor is not an owner or admin
            ValidationError: If type, category, amount or date is invalid
            NotFoundError: If the employee does not exist
            LockedPeriodError: If the period is locked
        """
        require_elevated(actor, "add manual entries")

        try:
            kind = EntryType(entry_type)
        except ValueError as e:
            raise ValidationError(f"Invalid entry type: {entry_type!r}") from e

        allowed = EARNING_CATEGORIES if kind == EntryType.EARNING else DEDUCTION_CATEGORIES
        if category not in allowed:
            raise ValidationError(
                f"Invalid {kind.value} category {category!r}; "
                f"expected one of {', '.join(sorted(allowed))}"
            )

        value = round_to_cents(_to_decimal(amount, "amount"))
        if kind == EntryType.EARNING:
            if value <= 0:
                raise ValidationError("Earning amount must be positive")
        else:
            if value == 0:
                raise ValidationError("Deduction amount must be non-zero")
            value = -abs(value)

        if await self.session.get(Employee, employee_id) is None:
            raise NotFoundError("Employee", employee_id)

        period = await self.periods.ensure_period_for_id(period_id)
        assert_period_mutable(period, "add manual entries")
        if work_date is not None and not period.contains(work_date):
            raise ValidationError(
                f"Work date {work_date.isoformat()} is outside period {period.period_id}"
            )

        entry = CompensableEntry(
            period_id=period.period_id,
            employee_id=employee_id,
            entry_type=kind.value,
            category=category,
            amount=value,
            hours=_to_decimal(hours, "hours") if hours is not None else None,
            units=units,
            work_date=work_date,
            source=EntrySource.MANUAL.value,
            description=description,
            employee_approved=False,
            admin_approved=False,
        )
        self.session.add(entry)
        await self.session.flush()

        self.audit.record(
            entity_type="compensable_entry",
            entity_id=entry.entry_id,
            action="manual_entry_created",
            actor_id=actor.actor_id,
            after=entry.snapshot(),
        )
        logger.info(
            "Manual %s %s of %s added for employee %s in period %s",
            kind.value,
            category,
            value,
            employee_id,
            period.period_id,
        )
        return entry

    async def override_entry(
        self,
        entry_id: UUID,
        new_amount: Decimal,
        actor: Actor,
        reason: str | None = None,
    ) -> CompensableEntry:
        """Replace the amount of an earning, keeping the computed original.

        The first override records ``override_original_amount``; later
        overrides leave it untouched so the computed value is never lost.

        Raises:
            PermissionDeniedError: If the actor is not an owner or admin
            NotFoundError: If the entry does not exist
            ValidationError: If the entry is a deduction or the amount is negative
            LockedPeriodError: If the entry's period or run is locked
            ConflictError: If the entry changed concurrently
        """
        require_elevated(actor, "override entries")

        entry = await self.session.get(CompensableEntry, entry_id)
        if entry is None:
            raise NotFoundError("Compensable entry", entry_id)
        if entry.entry_type != EntryType.EARNING.value:
            raise ValidationError("Only earnings can be overridden")

        value = round_to_cents(_to_decimal(new_amount, "amount"))
        if value < 0:
            raise ValidationError("Override amount must not be negative")

        await self.periods.get_mutable_period(entry.period_id, "override entries")
        if entry.approved_in_run_id and entry.approved_in_run_id != entry.period_id:
            run = await self.session.get(PayrollPeriod, entry.approved_in_run_id)
            if run is not None and run.is_locked:
                raise LockedPeriodError(run.period_id, "override entries")

        before = entry.snapshot()
        if entry.override_original_amount is None:
            entry.override_original_amount = entry.amount
        entry.amount = value
        entry.override_reason = reason
        entry.override_by = actor.actor_id
        entry.override_at = utcnow()

        try:
            await self.session.flush()
        except StaleDataError as e:
            raise ConflictError(f"Entry {entry_id} was modified concurrently; retry") from e

        self.audit.record(
            entity_type="compensable_entry",
            entity_id=entry.entry_id,
            action="override",
            actor_id=actor.actor_id,
            before=before,
            after=entry.snapshot(),
        )
        return entry
