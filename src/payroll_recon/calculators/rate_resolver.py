"""Effective-dated pay rate resolution with location scoping."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_recon.calculators.types import RateSnapshot, RateType
from payroll_recon.models import PayRate

logger = logging.getLogger(__name__)

# Rates below these are almost always data-entry mistakes (e.g. $1 entries)
MIN_EXPECTED_RATES: dict[str, Decimal] = {
    RateType.PER_VISIT.value: Decimal("5"),
    RateType.HOURLY.value: Decimal("5"),
    RateType.MONTHLY.value: Decimal("100"),
}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _recency_key(rate: PayRate) -> tuple:
    created = rate.created_at or _EPOCH
    # SQLite hands back naive timestamps
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return (rate.effective_date, created, str(rate.pay_rate_id))


def select_applicable_rate(
    rates: Iterable[PayRate],
    as_of: date,
    location_id: UUID | None = None,
) -> PayRate | None:
    """Pick the single applicable rate from an employee's rate table.

    Selection order:
    1. Only rates with effective_date <= as_of are candidates
    2. With a location, the most recent rate scoped to that location wins
    3. Otherwise the most recent global (unscoped) rate
    4. Ties: latest effective_date, then latest created_at, then highest id

    Rates scoped to a different location never apply.
    """
    candidates = [r for r in rates if r.effective_date <= as_of]

    if location_id is not None:
        scoped = [r for r in candidates if r.location_id == location_id]
        if scoped:
            return max(scoped, key=_recency_key)

    global_rates = [r for r in candidates if r.location_id is None]
    if not global_rates:
        return None
    return max(global_rates, key=_recency_key)


def snapshot_rate(rate: PayRate) -> RateSnapshot:
    """Copy a rate row into an immutable snapshot."""
    return RateSnapshot(
        pay_rate_id=rate.pay_rate_id,
        rate_type=RateType(rate.rate_type),
        amount=Decimal(rate.amount),
        effective_date=rate.effective_date,
        location_id=rate.location_id,
    )


class RateResolver:
    """Resolves the applicable pay rate for an employee at a point in time.

    Resolution never raises for a missing rate: ``None`` means the work
    cannot be paid yet, and callers must never substitute zero.

    Rate tables are cached per employee for the lifetime of the resolver,
    so one resolver should be scoped to one batch operation.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._rates_by_employee: dict[UUID, list[PayRate]] = {}

    async def resolve(
        self,
        employee_id: UUID,
        as_of: date,
        location_id: UUID | None = None,
    ) -> RateSnapshot | None:
        """Resolve the rate for one unit of work.

        Args:
            employee_id: Employee performing the work
            as_of: Work date used for effective-date filtering
            location_id: Location of the work, if known

        Returns:
            Snapshot of the applicable rate, or None when no rate predates as_of
        """
        rates = await self._get_rates(employee_id)
        rate = select_applicable_rate(rates, as_of, location_id)
        if rate is None:
            return None

        snapshot = snapshot_rate(rate)
        minimum = MIN_EXPECTED_RATES[snapshot.rate_type.value]
        if 0 < snapshot.amount < minimum:
            logger.warning(
                "Suspiciously low %s rate %s for employee %s (rate %s, expected >= %s)",
                snapshot.rate_type.value,
                snapshot.amount,
                employee_id,
                rate.pay_rate_id,
                minimum,
            )
        return snapshot

    async def has_rate(
        self,
        employee_id: UUID,
        as_of: date,
        location_id: UUID | None = None,
    ) -> bool:
        """Check whether any rate applies, without building a snapshot."""
        rates = await self._get_rates(employee_id)
        return select_applicable_rate(rates, as_of, location_id) is not None

    async def _get_rates(self, employee_id: UUID) -> list[PayRate]:
        """Load (and cache) the full rate table for an employee."""
        if employee_id not in self._rates_by_employee:
            result = await self.session.execute(
                select(PayRate).where(PayRate.employee_id == employee_id)
            )
            self._rates_by_employee[employee_id] = list(result.scalars().all())
        return self._rates_by_employee[employee_id]
