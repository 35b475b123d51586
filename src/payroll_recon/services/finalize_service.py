"""Period finalization: freeze totals, lock, write the expense record."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_recon.calculators.totals import aggregate_totals
from payroll_recon.calculators.types import FinalizeResult
from payroll_recon.config import get_settings
from payroll_recon.database import insert_ignore
from payroll_recon.exceptions import ConflictError, InvalidTransitionError, MissingRatesError
from payroll_recon.models import PayrollExpense, PayrollPeriod
from payroll_recon.models.base import utcnow
from payroll_recon.services.audit_service import AuditTrail
from payroll_recon.services.authorization import Actor, require_elevated
from payroll_recon.services.period_service import PeriodService
from payroll_recon.services.state_machine import PeriodStatus
from payroll_recon.services.sync_service import EntrySynchronizer

logger = logging.getLogger(__name__)

# Nets smaller than half a cent produce no expense record
EXPENSE_THRESHOLD = Decimal("0.005")


class Finalizer:
    """Locks a period and freezes its run totals.

    Key invariants:
    1. Finalizing a locked period is a no-op that reports already_finalized
    2. The approved -> locked flip is a conditional UPDATE, so two
       concurrent finalizers cannot both win
    3. The lock, the audit event and the expense record share one
       transaction
    4. A period with unpaid work (missing rates) cannot be locked
    """

    def __init__(
        self,
        session: AsyncSession,
        synchronizer: EntrySynchronizer | None = None,
        expense_vendor: str | None = None,
    ):
        self.session = session
        self.periods = PeriodService(session)
        self.synchronizer = synchronizer or EntrySynchronizer(session)
        self.audit = AuditTrail(session)
        self.expense_vendor = expense_vendor or get_settings().expense_vendor

    async def finalize(self, period_id: str, actor: Actor) -> FinalizeResult:
        """Finalize an approved period.

        Raises:
            PermissionDeniedError: If the actor is not an owner or admin
            NotFoundError: If the period does not exist
            MissingRatesError: If employees with work lack a pay rate,
                checked before the status
            InvalidTransitionError: If the period is not approved
            ConflictError: If the period changed concurrently
        """
        require_elevated(actor, "finalize payroll periods")
        period = await self.periods.get_period(period_id)

        if period.is_locked:
            return self._already_finalized(period)

        # Blocking employees are reported whatever the period's status
        missing = await self.synchronizer.find_missing_rate_employee_ids(period_id)
        if missing:
            raise MissingRatesError(period_id, missing)

        if period.status != PeriodStatus.APPROVED.value:
            raise InvalidTransitionError(
                period.status,
                PeriodStatus.LOCKED.value,
                "period must be approved before it can be finalized",
            )

        run_entries = await self.periods.list_run_entries(period_id)
        totals = aggregate_totals(run_entries)
        frozen = totals.to_dict()
        finalized_at = utcnow()

        stmt = (
            update(PayrollPeriod)
            .where(
                PayrollPeriod.period_id == period_id,
                PayrollPeriod.status == PeriodStatus.APPROVED.value,
                PayrollPeriod.version == period.version,
            )
            .values(
                status=PeriodStatus.LOCKED.value,
                totals_json=frozen,
                finalized_at=finalized_at,
                finalized_by=actor.actor_id,
                version=PayrollPeriod.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.refresh(period)

        if result.rowcount == 0:
            if period.is_locked:
                return self._already_finalized(period)
            raise ConflictError(f"Payroll period {period_id} was modified concurrently")

        self.audit.record(
            entity_type="payroll_period",
            entity_id=period_id,
            action="finalized",
            actor_id=actor.actor_id,
            before={"status": PeriodStatus.APPROVED.value},
            after={"status": PeriodStatus.LOCKED.value, "totals": frozen},
        )

        expense_created = False
        if abs(totals.net) > EXPENSE_THRESHOLD:
            expense = insert_ignore(self.session, PayrollExpense, ["period_id"]).values(
                period_id=period_id,
                vendor=self.expense_vendor,
                category="Payroll",
                amount=totals.net,
                paid_at=period.pay_date,
                memo=(
                    f"Payroll for {period.period_start.isoformat()} to "
                    f"{period.period_end.isoformat()}"
                ),
            )
            inserted = await self.session.execute(expense)
            expense_created = bool(inserted.rowcount)

        await self.session.flush()
        logger.info(
            "Finalized period %s: %d entries, net %s, expense %s",
            period_id,
            totals.entry_count,
            totals.net,
            "created" if expense_created else "skipped",
        )
        return FinalizeResult(
            period_id=period_id,
            already_finalized=False,
            expense_created=expense_created,
            totals=frozen,
        )

    @staticmethod
    def _already_finalized(period: PayrollPeriod) -> FinalizeResult:
        return FinalizeResult(
            period_id=period.period_id,
            already_finalized=True,
            expense_created=False,
            totals=period.totals_json,
        )
