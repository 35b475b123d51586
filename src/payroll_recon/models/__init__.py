"""ORM models."""

from payroll_recon.models.base import Base, TimestampMixin, UpdatedAtMixin
from payroll_recon.models.payroll import (
    AuditEvent,
    CompensableEntry,
    PayrollExpense,
    PayrollPeriod,
)
from payroll_recon.models.reference import (
    ClockEvent,
    Employee,
    Job,
    JobAssignment,
    PayRate,
    ScheduledWorkDay,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    "AuditEvent",
    "CompensableEntry",
    "PayrollExpense",
    "PayrollPeriod",
    "ClockEvent",
    "Employee",
    "Job",
    "JobAssignment",
    "PayRate",
    "ScheduledWorkDay",
]
