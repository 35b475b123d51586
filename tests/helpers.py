"""Shared test data builders."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from payroll_recon.models import (
    ClockEvent,
    Employee,
    Job,
    JobAssignment,
    PayRate,
    ScheduledWorkDay,
)

FIRST_PERIOD = "2026-01-15"
SECOND_PERIOD = "2026-02-01"

ADMIN_HEADERS = {"X-Actor-ID": "admin@example.com", "X-Actor-Role": "admin"}


def employee_headers(employee_id: UUID) -> dict[str, str]:
    """Request headers for an employee acting as themselves."""
    return {"X-Actor-ID": str(employee_id), "X-Actor-Role": "employee"}


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """UTC timestamp on a given day."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


class Seeder:
    """Writes reference data the way the upstream subsystems would."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def employee(self, name: str = "Alice", role: str = "employee") -> Employee:
        employee = Employee(display_name=name, role=role)
        self.session.add(employee)
        await self.session.flush()
        return employee

    async def rate(
        self,
        employee: Employee,
        rate_type: str,
        amount: str,
        effective_date: date = date(2025, 12, 1),
        location_id: UUID | None = None,
    ) -> PayRate:
        rate = PayRate(
            employee_id=employee.employee_id,
            rate_type=rate_type,
            amount=Decimal(amount),
            effective_date=effective_date,
            location_id=location_id,
        )
        self.session.add(rate)
        await self.session.flush()
        return rate

    async def job(
        self,
        service_date: date,
        employees: list[Employee],
        hours: str = "2.00",
        location_id: UUID | None = None,
        completed: bool = True,
    ) -> Job:
        job = Job(
            service_date=service_date,
            location_id=location_id,
            scheduled_duration_hours=Decimal(hours),
            completed=completed,
            assignments=[JobAssignment(employee_id=e.employee_id) for e in employees],
        )
        self.session.add(job)
        await self.session.flush()
        return job

    async def clock(
        self,
        employee: Employee,
        clock_in: datetime,
        clock_out: datetime | None,
        location_id: UUID | None = None,
    ) -> ClockEvent:
        event = ClockEvent(
            employee_id=employee.employee_id,
            clock_in=clock_in,
            clock_out=clock_out,
            location_id=location_id,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def scheduled(self, employee: Employee, *days: date) -> None:
        for day in days:
            self.session.add(ScheduledWorkDay(employee_id=employee.employee_id, work_date=day))
        await self.session.flush()
