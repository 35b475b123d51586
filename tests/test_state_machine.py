"""Tests for the payroll period state machine."""

import pytest

from payroll_recon.exceptions import InvalidTransitionError
from payroll_recon.services.state_machine import PeriodStateMachine, PeriodStatus


class TestPeriodStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # draft → review
        assert PeriodStateMachine.can_transition("draft", "review") is True

        # review → approved
        assert PeriodStateMachine.can_transition("review", "approved") is True

        # approved → review (reopen)
        assert PeriodStateMachine.can_transition("approved", "review") is True

        # approved → locked
        assert PeriodStateMachine.can_transition("approved", "locked") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't skip review
        assert PeriodStateMachine.can_transition("draft", "approved") is False
        assert PeriodStateMachine.can_transition("review", "locked") is False

        # Can't go back to draft
        assert PeriodStateMachine.can_transition("review", "draft") is False

        # Locked is terminal
        for status in PeriodStatus:
            assert PeriodStateMachine.can_transition("locked", status.value) is False

    def test_validate_transition_raises(self):
        """Test that validate_transition raises for invalid transitions."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            PeriodStateMachine.validate_transition("draft", "locked")

        assert exc_info.value.from_status == "draft"
        assert exc_info.value.to_status == "locked"
        assert exc_info.value.code == "INVALID_TRANSITION"

    def test_is_reopen(self):
        assert PeriodStateMachine.is_reopen("approved", "review") is True
        assert PeriodStateMachine.is_reopen("draft", "review") is False

    def test_entries_mutable_until_locked(self):
        assert PeriodStateMachine.can_modify_entries("draft") is True
        assert PeriodStateMachine.can_modify_entries("review") is True
        assert PeriodStateMachine.can_modify_entries("approved") is True
        assert PeriodStateMachine.can_modify_entries("locked") is False

    def test_terminal_states(self):
        assert PeriodStateMachine.is_terminal("locked") is True
        assert PeriodStateMachine.is_terminal("approved") is False

    def test_get_next_statuses(self):
        assert PeriodStateMachine.get_next_statuses("draft") == ["review"]
        assert set(PeriodStateMachine.get_next_statuses("approved")) == {"review", "locked"}
        assert PeriodStateMachine.get_next_statuses("locked") == []
