"""Reference data owned by other subsystems: employees, rates, work evidence.

The engine reads these tables but never writes them.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_recon.models.base import Base, TimestampMixin


class Employee(Base, TimestampMixin):
    """Employee record."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    role: Mapped[str] = mapped_column(String, nullable=False, default="employee")

    __table_args__ = (
        CheckConstraint(
            "role IN ('owner', 'admin', 'employee')",
            name="employee_role_check",
        ),
    )

    # Relationships
    pay_rates: Mapped[list[PayRate]] = relationship(back_populates="employee")

    @property
    def is_owner(self) -> bool:
        """Owners are paid manually and are skipped by automated sync."""
        return self.role == "owner"


class PayRate(Base, TimestampMixin):
    """Effective-dated pay rate, optionally scoped to one location."""

    __tablename__ = "pay_rate"

    pay_rate_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rate_type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    location_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "rate_type IN ('hourly', 'per_visit', 'monthly')",
            name="pay_rate_type_check",
        ),
        CheckConstraint("amount >= 0", name="pay_rate_amount_check"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="pay_rates")

    @property
    def is_global(self) -> bool:
        """Check if the rate applies at every location."""
        return self.location_id is None


class Job(Base, TimestampMixin):
    """A scheduled service visit at a location."""

    __tablename__ = "job"

    job_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    location_id: Mapped[UUID | None] = mapped_column(nullable=True)
    service_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    scheduled_duration_hours: Mapped[Decimal] = mapped_column(
        Numeric(8, 2), nullable=False, default=Decimal("0")
    )
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    assignments: Mapped[list[JobAssignment]] = relationship(
        back_populates="job",
        cascade="all, delete-orphan",
    )

    @property
    def employee_ids(self) -> list[UUID]:
        """Assigned employees, in assignment order."""
        return [a.employee_id for a in self.assignments]


class JobAssignment(Base):
    """Employee assigned to a job."""

    __tablename__ = "job_assignment"

    job_id: Mapped[UUID] = mapped_column(
        ForeignKey("job.job_id", ondelete="CASCADE"),
        primary_key=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        primary_key=True,
    )

    # Relationships
    job: Mapped[Job] = relationship(back_populates="assignments")


class ClockEvent(Base, TimestampMixin):
    """Employee clock-in/clock-out pair. Open while clock_out is unset."""

    __tablename__ = "clock_event"

    clock_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    location_id: Mapped[UUID | None] = mapped_column(nullable=True)
    clock_in: Mapped[datetime] = mapped_column(nullable=False, index=True)
    clock_out: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "clock_out IS NULL OR clock_out >= clock_in",
            name="clock_event_times_check",
        ),
    )

    @property
    def is_open(self) -> bool:
        """Check if the employee has not clocked out yet."""
        return self.clock_out is None

    @property
    def work_date(self) -> date:
        """Calendar day the shift started on."""
        return self.clock_in.date()


class ScheduledWorkDay(Base):
    """Day an employee is expected to work (from the scheduling subsystem)."""

    __tablename__ = "scheduled_work_day"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        primary_key=True,
    )
    work_date: Mapped[date] = mapped_column(Date, primary_key=True)
