"""Payroll period, compensable entry, audit and expense models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_recon.models.base import Base, JSONDocument, TimestampMixin, UpdatedAtMixin


# ===== Periods =====


class PayrollPeriod(Base, TimestampMixin, UpdatedAtMixin):
    """Semi-monthly payroll period. Also the run that entries are approved into."""

    __tablename__ = "payroll_period"

    # Pay date as YYYY-MM-DD
    period_id: Mapped[str] = mapped_column(String(10), primary_key=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    totals_json: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_by: Mapped[str | None] = mapped_column(String, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'review', 'approved', 'locked')",
            name="payroll_period_status_check",
        ),
        CheckConstraint("period_end >= period_start", name="payroll_period_dates_check"),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_locked(self) -> bool:
        """Check if the period has been finalized."""
        return self.status == "locked"

    def contains(self, work_date: date) -> bool:
        """Check if a work date falls inside the period window."""
        return self.period_start <= work_date <= self.period_end


# ===== Entries =====


class CompensableEntry(Base, TimestampMixin, UpdatedAtMixin):
    """One payable or deductible ledger line for one employee in one period.

    Sign conventions:
    - earning: positive amount
    - deduction: negative amount
    """

    __tablename__ = "compensable_entry"

    entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period_id: Mapped[str] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    entry_type: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    units: Mapped[int | None] = mapped_column(Integer, nullable=True)
    job_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)
    clock_event_id: Mapped[UUID | None] = mapped_column(nullable=True)
    work_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    rate_snapshot: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Approval flags
    employee_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    admin_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_in_run_id: Mapped[str | None] = mapped_column(
        ForeignKey("payroll_period.period_id"),
        nullable=True,
        index=True,
    )

    # Administrative override
    override_original_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True
    )
    override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    override_by: Mapped[str | None] = mapped_column(String, nullable=True)
    override_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Idempotence key for synchronized entries; NULL for manual entries
    dedupe_key: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint(
            "entry_type IN ('earning', 'deduction')",
            name="compensable_entry_type_check",
        ),
        CheckConstraint(
            "source IN ('job_sync', 'clock_sync', 'manual', 'missed_day_auto', "
            "'monthly_base_auto')",
            name="compensable_entry_source_check",
        ),
        CheckConstraint(
            "(entry_type = 'earning' AND amount >= 0) "
            "OR (entry_type = 'deduction' AND amount <= 0)",
            name="compensable_entry_sign_check",
        ),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_overridden(self) -> bool:
        """Check if an administrator has replaced the computed amount."""
        return self.override_original_amount is not None

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe view used for audit before/after payloads."""
        return {
            "entry_id": str(self.entry_id),
            "period_id": self.period_id,
            "employee_id": str(self.employee_id),
            "entry_type": self.entry_type,
            "category": self.category,
            "amount": str(self.amount),
            "employee_approved": self.employee_approved,
            "admin_approved": self.admin_approved,
            "approved_in_run_id": self.approved_in_run_id,
            "override_original_amount": (
                str(self.override_original_amount)
                if self.override_original_amount is not None
                else None
            ),
            "override_reason": self.override_reason,
        }


# ===== Audit & Expenses =====


class AuditEvent(Base, TimestampMixin):
    """Audit trail entry. Append-only."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    actor_id: Mapped[str | None] = mapped_column(String, nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    action: Mapped[str] = mapped_column(String, nullable=False)
    before_json: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)


class PayrollExpense(Base, TimestampMixin):
    """Expense record written once when a period is finalized."""

    __tablename__ = "payroll_expense"

    expense_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period_id: Mapped[str] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    vendor: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, default="Payroll")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    paid_at: Mapped[date] = mapped_column(Date, nullable=False)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
