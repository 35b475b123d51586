"""Semi-monthly pay period arithmetic.

Work done on days 1-15 is paid on the 15th of the same month; work done
from the 16th to month end is paid on the 1st of the next month. A
period is identified by its pay date (YYYY-MM-DD).
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone


@dataclass(frozen=True)
class PeriodWindow:
    """Work window and pay date of one semi-monthly period."""

    period_id: str
    period_start: date
    period_end: date
    pay_date: date

    def contains(self, work_date: date) -> bool:
        return self.period_start <= work_date <= self.period_end

    def days(self) -> list[date]:
        """Every calendar day in the work window."""
        span = (self.period_end - self.period_start).days
        return [self.period_start + timedelta(days=i) for i in range(span + 1)]

    def clock_range(self) -> tuple[datetime, datetime]:
        """Half-open UTC range [start, end) covering the work window."""
        start = datetime.combine(self.period_start, time.min, tzinfo=timezone.utc)
        end = datetime.combine(
            self.period_end + timedelta(days=1), time.min, tzinfo=timezone.utc
        )
        return start, end


def _last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _first_of_next_month(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1)
    return date(year, month + 1, 1)


def period_for_work_date(work_date: date) -> PeriodWindow:
    """Period that pays for work done on the given day."""
    if work_date.day <= 15:
        pay_date = date(work_date.year, work_date.month, 15)
        return PeriodWindow(
            period_id=pay_date.isoformat(),
            period_start=date(work_date.year, work_date.month, 1),
            period_end=pay_date,
            pay_date=pay_date,
        )

    pay_date = _first_of_next_month(work_date.year, work_date.month)
    return PeriodWindow(
        period_id=pay_date.isoformat(),
        period_start=date(work_date.year, work_date.month, 16),
        period_end=_last_day_of_month(work_date.year, work_date.month),
        pay_date=pay_date,
    )


def period_for_pay_date(pay_date: date) -> PeriodWindow:
    """Period paid on the given day.

    Raises:
        ValueError: If pay_date is not the 1st or the 15th
    """
    if pay_date.day == 15:
        return period_for_work_date(pay_date)

    if pay_date.day == 1:
        last_of_previous = pay_date - timedelta(days=1)
        return period_for_work_date(last_of_previous)

    raise ValueError(
        f"Invalid pay date {pay_date.isoformat()}: semi-monthly pay dates "
        "must be the 1st or 15th of the month"
    )


def period_for_id(period_id: str) -> PeriodWindow:
    """Parse a period id (its pay date) into the period window."""
    try:
        pay_date = date.fromisoformat(period_id)
    except ValueError as e:
        raise ValueError(f"Invalid period id {period_id!r}: expected YYYY-MM-DD") from e
    return period_for_pay_date(pay_date)


def previous_period(period: PeriodWindow) -> PeriodWindow:
    """Period immediately before the given one."""
    return period_for_work_date(period.period_start - timedelta(days=1))


def next_period(period: PeriodWindow) -> PeriodWindow:
    """Period immediately after the given one."""
    return period_for_work_date(period.period_end + timedelta(days=1))
