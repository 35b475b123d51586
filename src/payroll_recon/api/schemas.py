"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Period schemas
# ============================================================================


class PeriodResponse(BaseModel):
    """Schema for payroll period response."""

    model_config = ConfigDict(from_attributes=True)

    period_id: str
    period_start: date
    period_end: date
    pay_date: date
    status: str
    totals_json: dict[str, Any] | None = None
    finalized_at: datetime | None = None
    finalized_by: str | None = None
    version: int
    created_at: datetime
    updated_at: datetime


class PeriodListResponse(BaseModel):
    """Schema for listing payroll periods."""

    items: list[PeriodResponse]
    total: int


class PeriodSummaryResponse(BaseModel):
    """Live and frozen totals of a period."""

    period_id: str
    status: str
    period_totals: dict[str, Any]
    run_totals: dict[str, Any]
    frozen_totals: dict[str, Any] | None = None


class TransitionRequest(BaseModel):
    """Schema for a period status change."""

    to_status: str
    reason: str | None = None


class MissingRatesResponse(BaseModel):
    """Employees blocking finalization."""

    period_id: str
    employee_ids: list[UUID]


class JobMissingRatesResponse(BaseModel):
    """Assigned employees of a job without a pay rate."""

    job_id: UUID
    employee_ids: list[UUID]


# ============================================================================
# Entry schemas
# ============================================================================


class EntryResponse(BaseModel):
    """Schema for compensable entry response."""

    model_config = ConfigDict(from_attributes=True)

    entry_id: UUID
    period_id: str
    employee_id: UUID
    entry_type: str
    category: str
    amount: Decimal
    hours: Decimal | None = None
    units: int | None = None
    job_id: UUID | None = None
    clock_event_id: UUID | None = None
    work_date: date | None = None
    rate_snapshot: dict[str, Any] | None = None
    source: str
    description: str | None = None
    employee_approved: bool
    admin_approved: bool
    approved_in_run_id: str | None = None
    override_original_amount: Decimal | None = None
    override_reason: str | None = None
    override_by: str | None = None
    override_at: datetime | None = None


class EntryListResponse(BaseModel):
    """Schema for listing entries."""

    items: list[EntryResponse]
    total: int


class ManualEntryCreate(BaseModel):
    """Schema for adding a manual earning or deduction."""

    period_id: str
    employee_id: UUID
    entry_type: str
    category: str
    amount: Decimal
    description: str | None = None
    hours: Decimal | None = None
    units: int | None = None
    work_date: date | None = None


class OverrideRequest(BaseModel):
    """Schema for overriding an earning amount."""

    amount: Decimal = Field(..., ge=0)
    reason: str | None = None


# ============================================================================
# Approval schemas
# ============================================================================


class ApproveEntriesRequest(BaseModel):
    """Schema for approving entries into a run."""

    entry_ids: list[UUID] = Field(..., min_length=1)
    require_employee_approval: bool | None = None


class EmployeeApproveRequest(BaseModel):
    """Schema for an employee approving their own entries."""

    entry_ids: list[UUID] = Field(..., min_length=1)


class ApprovalResponse(BaseModel):
    """Schema for approval response."""

    run_id: str | None = None
    approved: int
    already_approved: int


# ============================================================================
# Sync schemas
# ============================================================================


class SyncFailureResponse(BaseModel):
    """One item a batch could not process."""

    item_id: str
    reason: str


class JobSyncResponse(BaseModel):
    """Schema for job sync results."""

    period_id: str
    processed_jobs: int
    created_entries: int
    skipped_jobs: int
    missing_rate_employee_ids: list[UUID]
    errors: list[SyncFailureResponse]


class ClockSyncRequest(BaseModel):
    """Schema for syncing clock events over a time range."""

    start: datetime
    end: datetime


class ClockSyncResponse(BaseModel):
    """Schema for clock sync results."""

    processed_events: int
    created_entries: int
    skipped_events: int
    missing_rate_employee_ids: list[UUID]
    errors: list[SyncFailureResponse]


class DeductionSyncResponse(BaseModel):
    """Schema for deduction sync results."""

    period_id: str
    created: int
    updated: int
    removed: int


class ReconcileResponse(BaseModel):
    """Schema for a full period reconciliation."""

    period_id: str
    jobs: JobSyncResponse
    clock: ClockSyncResponse
    deductions: DeductionSyncResponse
    missing_rate_employee_ids: list[UUID]


# ============================================================================
# Finalize schemas
# ============================================================================


class FinalizeResponse(BaseModel):
    """Schema for finalize response."""

    period_id: str
    already_finalized: bool
    expense_created: bool
    totals: dict[str, Any] | None = None


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str | None = None
    employee_ids: list[UUID] | None = None
