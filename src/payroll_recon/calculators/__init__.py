"""Pure payroll calculations: rates, earnings, totals, periods."""

from payroll_recon.calculators.earnings import calculate_earning, clock_hours, round_to_cents
from payroll_recon.calculators.periods import (
    PeriodWindow,
    period_for_id,
    period_for_pay_date,
    period_for_work_date,
)
from payroll_recon.calculators.rate_resolver import RateResolver, select_applicable_rate
from payroll_recon.calculators.totals import aggregate_totals

__all__ = [
    "calculate_earning",
    "clock_hours",
    "round_to_cents",
    "PeriodWindow",
    "period_for_id",
    "period_for_pay_date",
    "period_for_work_date",
    "RateResolver",
    "select_applicable_rate",
    "aggregate_totals",
]
