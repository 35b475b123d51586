"""Typed exception hierarchy for the payroll reconciliation engine.

    PayrollError (base)
    |
    +-- ValidationError
    |   +-- LockedPeriodError
    |   +-- MissingRatesError
    |   +-- InvalidTransitionError
    |   +-- EntryClaimedError
    |
    +-- PermissionDeniedError
    +-- ConflictError
    +-- NotFoundError

Every exception carries a machine-readable ``code`` and the structured
data a caller needs to act on it. Batch operations never raise these for
individual items; they report failures as data instead.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from uuid import UUID


class PayrollError(Exception):
    """Base class for all engine errors."""

    code: str = "PAYROLL_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {"detail": str(self), "code": self.code}


class ValidationError(PayrollError):
    """Input or state does not allow the requested operation."""

    code = "VALIDATION_ERROR"


class LockedPeriodError(ValidationError):
    """Attempt to mutate a locked (finalized) period or one of its entries."""

    code = "PERIOD_LOCKED"

    def __init__(self, period_id: str, operation: str | None = None):
        self.period_id = period_id
        self.operation = operation
        msg = f"Payroll period {period_id} is locked"
        if operation:
            msg += f"; cannot {operation}"
        super().__init__(msg)


class MissingRatesError(ValidationError):
    """Some employees have work in the period but no applicable rate."""

    code = "MISSING_RATES"

    def __init__(self, period_id: str, employee_ids: Iterable[UUID]):
        self.period_id = period_id
        self.employee_ids = sorted(employee_ids, key=str)
        names = ", ".join(str(e) for e in self.employee_ids)
        super().__init__(
            f"Payroll period {period_id} has employees without a pay rate: {names}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["employee_ids"] = [str(e) for e in self.employee_ids]
        return data


class InvalidTransitionError(ValidationError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class EntryClaimedError(ValidationError):
    """Entry is already approved into a different run."""

    code = "ENTRY_CLAIMED"

    def __init__(self, entry_id: UUID, claimed_run_id: str, requested_run_id: str):
        self.entry_id = entry_id
        self.claimed_run_id = claimed_run_id
        self.requested_run_id = requested_run_id
        super().__init__(
            f"Entry {entry_id} is already approved into run {claimed_run_id}, "
            f"cannot approve into {requested_run_id}"
        )


class PermissionDeniedError(PayrollError):
    """Caller lacks the role required for the operation."""

    code = "PERMISSION_DENIED"

    def __init__(self, operation: str, role: str):
        self.operation = operation
        self.role = role
        super().__init__(f"Role '{role}' is not allowed to {operation}")


class ConflictError(PayrollError):
    """Concurrent modification detected; the caller should retry."""

    code = "CONFLICT"


class NotFoundError(PayrollError):
    """Referenced record does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")
