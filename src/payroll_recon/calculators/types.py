"""Type definitions for the reconciliation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class RateType(str, Enum):
    """Pay rate types."""

    HOURLY = "hourly"
    PER_VISIT = "per_visit"
    MONTHLY = "monthly"


class EntryType(str, Enum):
    """Compensable entry types."""

    EARNING = "earning"
    DEDUCTION = "deduction"


class EntrySource(str, Enum):
    """Where a compensable entry came from."""

    JOB_SYNC = "job_sync"
    CLOCK_SYNC = "clock_sync"
    MANUAL = "manual"
    MISSED_DAY_AUTO = "missed_day_auto"
    MONTHLY_BASE_AUTO = "monthly_base_auto"


EARNING_CATEGORIES = frozenset({"per_visit", "hourly", "monthly"})

DEDUCTION_CATEGORIES = frozenset(
    {"missed_day", "uniform", "supplies", "advance", "manual_adjustment", "other"}
)

MISSED_DAY_CATEGORY = "missed_day"


@dataclass(frozen=True)
class RateSnapshot:
    """Copy of a resolved pay rate, stored on the entry at creation time."""

    pay_rate_id: UUID
    rate_type: RateType
    amount: Decimal
    effective_date: date
    location_id: UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation for the rate_snapshot column."""
        return {
            "pay_rate_id": str(self.pay_rate_id),
            "rate_type": self.rate_type.value,
            "amount": str(self.amount),
            "effective_date": self.effective_date.isoformat(),
            "location_id": str(self.location_id) if self.location_id else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RateSnapshot:
        """Rebuild a snapshot read back from the database."""
        return cls(
            pay_rate_id=UUID(data["pay_rate_id"]),
            rate_type=RateType(data["rate_type"]),
            amount=Decimal(data["amount"]),
            effective_date=date.fromisoformat(data["effective_date"]),
            location_id=UUID(data["location_id"]) if data.get("location_id") else None,
        )


@dataclass(frozen=True)
class EarningCalculation:
    """Payable amount computed for one unit of work."""

    amount: Decimal
    hours: Decimal | None = None
    units: int | None = None

    @property
    def is_payable(self) -> bool:
        return self.amount > 0


@dataclass
class EmployeeTotals:
    """Per-employee reduction over entries."""

    employee_id: UUID
    hours: Decimal = Decimal("0")
    units: int = 0
    earnings: Decimal = Decimal("0")
    deductions: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.earnings - self.deductions

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": str(self.employee_id),
            "hours": str(self.hours),
            "units": self.units,
            "earnings": str(self.earnings),
            "deductions": str(self.deductions),
            "net": str(self.net),
        }


@dataclass
class PeriodTotals:
    """Period-wide reduction over entries."""

    by_employee: dict[UUID, EmployeeTotals] = field(default_factory=dict)
    total_hours: Decimal = Decimal("0")
    total_earnings: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    entry_count: int = 0

    @property
    def net(self) -> Decimal:
        return self.total_earnings - self.total_deductions

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the frozen totals column and API responses."""
        return {
            "by_employee": {
                str(emp_id): totals.to_dict()
                for emp_id, totals in sorted(self.by_employee.items(), key=lambda i: str(i[0]))
            },
            "total_hours": str(self.total_hours),
            "total_earnings": str(self.total_earnings),
            "total_deductions": str(self.total_deductions),
            "net": str(self.net),
            "entry_count": self.entry_count,
        }


@dataclass(frozen=True)
class SyncFailure:
    """One item of a batch that could not be processed."""

    item_id: str
    reason: str


@dataclass
class JobSyncResult:
    """Outcome of syncing completed jobs into a period."""

    period_id: str
    processed_jobs: int = 0
    created_entries: int = 0
    skipped_jobs: int = 0
    missing_rate_employee_ids: list[UUID] = field(default_factory=list)
    errors: list[SyncFailure] = field(default_factory=list)


@dataclass
class ClockSyncResult:
    """Outcome of syncing clock events over a time range."""

    processed_events: int = 0
    created_entries: int = 0
    skipped_events: int = 0
    missing_rate_employee_ids: list[UUID] = field(default_factory=list)
    errors: list[SyncFailure] = field(default_factory=list)


@dataclass
class DeductionSyncResult:
    """Outcome of the missed-work deduction sync."""

    period_id: str
    created: int = 0
    removed: int = 0
    updated: int = 0


@dataclass
class ReconcileResult:
    """Combined outcome of a full period reconciliation."""

    period_id: str
    jobs: JobSyncResult
    clock: ClockSyncResult
    deductions: DeductionSyncResult

    @property
    def missing_rate_employee_ids(self) -> list[UUID]:
        merged = set(self.jobs.missing_rate_employee_ids) | set(
            self.clock.missing_rate_employee_ids
        )
        return sorted(merged, key=str)


@dataclass(frozen=True)
class ApprovalResult:
    """Outcome of an approval call."""

    run_id: str | None
    approved: int
    already_approved: int


@dataclass(frozen=True)
class FinalizeResult:
    """Outcome of finalizing a period."""

    period_id: str
    already_finalized: bool
    expense_created: bool
    totals: dict[str, Any] | None = None
