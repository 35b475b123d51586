"""Payroll period state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from payroll_recon.exceptions import InvalidTransitionError


class PeriodStatus(str, Enum):
    """Payroll period status values."""

    DRAFT = "draft"
    REVIEW = "review"
    APPROVED = "approved"
    LOCKED = "locked"


class PeriodStateMachine:
    """State machine for payroll period status transitions.

    Allowed transitions:
    - draft → review
    - review → approved
    - approved → review (reopen)
    - approved → locked (finalize only)
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        PeriodStatus.DRAFT: [PeriodStatus.REVIEW],
        PeriodStatus.REVIEW: [PeriodStatus.APPROVED],
        PeriodStatus.APPROVED: [PeriodStatus.REVIEW, PeriodStatus.LOCKED],
        PeriodStatus.LOCKED: [],  # Terminal state
    }

    # Statuses where entries may be synced, added, approved or overridden
    ENTRIES_MUTABLE = {
        PeriodStatus.DRAFT,
        PeriodStatus.REVIEW,
        PeriodStatus.APPROVED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_modify_entries(cls, status: str) -> bool:
        """Check if entries of a period in this status can be written."""
        return status in cls.ENTRIES_MUTABLE

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """Check if no transition leaves this status."""
        return not cls.VALID_TRANSITIONS.get(status, [])

    @classmethod
    def is_reopen(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a reopen (approved → review)."""
        return from_status == PeriodStatus.APPROVED and to_status == PeriodStatus.REVIEW

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
