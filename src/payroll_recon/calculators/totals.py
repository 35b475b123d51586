"""Totals aggregation over compensable entries.

Totals are always re-derived from the entry set. There are no running
counters, so an override or a removed deduction can never leave the
totals out of step with the ledger.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from payroll_recon.calculators.types import EmployeeTotals, EntryType, PeriodTotals
from payroll_recon.models import CompensableEntry


def aggregate_totals(entries: Iterable[CompensableEntry]) -> PeriodTotals:
    """Reduce entries into per-employee and period-wide totals.

    gross = sum of earning amounts
    deductions = sum of |amount| over deduction entries
    net = gross - deductions
    """
    totals = PeriodTotals()

    for entry in entries:
        emp = totals.by_employee.get(entry.employee_id)
        if emp is None:
            emp = EmployeeTotals(employee_id=entry.employee_id)
            totals.by_employee[entry.employee_id] = emp

        amount = Decimal(entry.amount)
        if entry.entry_type == EntryType.EARNING.value:
            emp.earnings += amount
            totals.total_earnings += amount
        else:
            emp.deductions += abs(amount)
            totals.total_deductions += abs(amount)

        if entry.hours is not None:
            emp.hours += Decimal(entry.hours)
            totals.total_hours += Decimal(entry.hours)
        if entry.units is not None:
            emp.units += entry.units

        totals.entry_count += 1

    return totals

