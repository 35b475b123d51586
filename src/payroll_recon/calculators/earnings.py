"""Payable amount calculation for jobs and clock events."""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from payroll_recon.calculators.types import EarningCalculation, RateSnapshot, RateType

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def round_to_cents(amount: Decimal) -> Decimal:
    """Round amount to 2 decimal places (cents)."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def clock_hours(clock_in: datetime, clock_out: datetime | None) -> Decimal:
    """Hours worked for a clock event, rounded to 2 decimals.

    Open events (no clock-out) count as zero hours. Negative spans clamp to zero.
    """
    if clock_out is None:
        return ZERO
    seconds = Decimal(str((clock_out - clock_in).total_seconds()))
    hours = (seconds / Decimal(3600)).quantize(CENTS, rounding=ROUND_HALF_UP)
    return max(ZERO, hours)


def calculate_earning(rate: RateSnapshot, hours_worked: Decimal) -> EarningCalculation:
    """Compute the payable amount for one unit of work.

    - hourly: rate x hours
    - per_visit: one unit at the flat rate
    - monthly: nothing (paid through the periodic base earning)
    """
    if rate.rate_type == RateType.PER_VISIT:
        return EarningCalculation(amount=round_to_cents(rate.amount), units=1)

    if rate.rate_type == RateType.HOURLY:
        hours = max(ZERO, hours_worked)
        return EarningCalculation(
            amount=round_to_cents(rate.amount * hours),
            hours=hours,
        )

    return EarningCalculation(amount=ZERO)


def semi_monthly_base(monthly_amount: Decimal) -> Decimal:
    """Base earning for one semi-monthly period of a monthly salary."""
    return round_to_cents(monthly_amount / 2)
