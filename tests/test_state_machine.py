"""Tests for approval and account status state machines."""

from datetime import datetime, timedelta, timezone

import pytest

from hr_engine.errors import InvalidStateError
from hr_engine.models import Account
from hr_engine.services.state_machine import (
    AccountStateMachine,
    AccountStatus,
    ApprovalStateMachine,
    InvalidTransitionError,
    derive_account_status,
    resolve_account_status,
)

T0 = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


class TestApprovalStateMachine:
    """Test leave request / timesheet transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        assert ApprovalStateMachine.can_transition("DRAFT", "SUBMITTED") is True
        assert ApprovalStateMachine.can_transition("DRAFT", "CANCELLED") is True
        assert ApprovalStateMachine.can_transition("SUBMITTED", "APPROVED") is True
        assert ApprovalStateMachine.can_transition("SUBMITTED", "REJECTED") is True
        assert ApprovalStateMachine.can_transition("SUBMITTED", "CANCELLED") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't skip submission
        assert ApprovalStateMachine.can_transition("DRAFT", "APPROVED") is False

        # No way back
        assert ApprovalStateMachine.can_transition("SUBMITTED", "DRAFT") is False

        # Terminal statuses
        for terminal in ("APPROVED", "REJECTED", "CANCELLED"):
            assert ApprovalStateMachine.get_next_statuses(terminal) == []
            assert ApprovalStateMachine.is_terminal(terminal) is True

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            ApprovalStateMachine.validate_transition("APPROVED", "REJECTED")

        assert exc_info.value.from_status == "APPROVED"
        assert exc_info.value.to_status == "REJECTED"
        assert "already final" in str(exc_info.value)

    def test_invalid_transition_is_invalid_state_error(self):
        with pytest.raises(InvalidStateError):
            ApprovalStateMachine.validate_decision("DRAFT", "APPROVED")

    def test_decision_must_be_approve_or_reject(self):
        with pytest.raises(InvalidTransitionError):
            ApprovalStateMachine.validate_decision("SUBMITTED", "CANCELLED")

    def test_only_draft_is_editable(self):
        assert ApprovalStateMachine.can_edit("DRAFT") is True
        assert ApprovalStateMachine.can_edit("SUBMITTED") is False
        assert ApprovalStateMachine.can_edit("APPROVED") is False


class TestAccountStateMachine:
    """Test account status transitions."""

    def test_setup_and_reset_paths(self):
        assert AccountStateMachine.can_transition("PENDING_SETUP", "ACTIVE") is True
        assert AccountStateMachine.can_transition("PENDING_SETUP", "PASSWORD_RESET_PENDING") is True
        assert (
            AccountStateMachine.can_transition("PASSWORD_RESET_PENDING", "PASSWORD_RESET_COMPLETED")
            is True
        )
        assert AccountStateMachine.can_transition("PASSWORD_RESET_COMPLETED", "ACTIVE") is True

    def test_suspension_is_reversible(self):
        assert AccountStateMachine.can_transition("ACTIVE", "SUSPENDED") is True
        assert AccountStateMachine.can_transition("SUSPENDED", "ACTIVE") is True

    def test_inactive_is_terminal(self):
        assert AccountStateMachine.get_next_statuses("INACTIVE") == []
        with pytest.raises(InvalidTransitionError):
            AccountStateMachine.validate_transition("INACTIVE", "ACTIVE")

    def test_suspended_cannot_reset_password(self):
        with pytest.raises(InvalidTransitionError):
            AccountStateMachine.validate_transition("SUSPENDED", "PASSWORD_RESET_PENDING")

    def test_login_allowed(self):
        assert AccountStateMachine.can_login("ACTIVE") is True
        assert AccountStateMachine.can_login("PASSWORD_RESET_COMPLETED") is True
        assert AccountStateMachine.can_login("SUSPENDED") is False
        assert AccountStateMachine.can_login("INACTIVE") is False
        assert AccountStateMachine.can_login("PENDING_SETUP") is False


class TestDeriveAccountStatus:
    """Status derivation for rows without an explicit status column."""

    def _derive(self, **overrides):
        fields = {
            "is_active": True,
            "last_login_at": None,
            "last_password_change_at": None,
            "password_reset_requested_at": None,
            "password_reset_completed_at": None,
        }
        fields.update(overrides)
        return derive_account_status(**fields)

    def test_never_used_inactive_account_is_pending_setup(self):
        assert self._derive(is_active=False) == AccountStatus.PENDING_SETUP

    def test_used_inactive_account_is_inactive(self):
        assert self._derive(is_active=False, last_login_at=T0) == AccountStatus.INACTIVE

    def test_open_reset_request_is_pending(self):
        status = self._derive(
            last_login_at=T0,
            password_reset_requested_at=T0 + timedelta(days=1),
        )
        assert status == AccountStatus.PASSWORD_RESET_PENDING

    def test_newer_request_after_completion_is_pending(self):
        status = self._derive(
            password_reset_completed_at=T0,
            password_reset_requested_at=T0 + timedelta(hours=1),
        )
        assert status == AccountStatus.PASSWORD_RESET_PENDING

    def test_completed_reset_without_login_is_completed(self):
        status = self._derive(
            last_login_at=T0,
            password_reset_requested_at=T0 + timedelta(days=1),
            password_reset_completed_at=T0 + timedelta(days=1, hours=1),
        )
        assert status == AccountStatus.PASSWORD_RESET_COMPLETED

    def test_login_after_completed_reset_is_active(self):
        status = self._derive(
            password_reset_requested_at=T0,
            password_reset_completed_at=T0 + timedelta(hours=1),
            last_login_at=T0 + timedelta(hours=2),
        )
        assert status == AccountStatus.ACTIVE

    def test_explicit_column_wins(self):
        account = Account(
            email="x@acme.test",
            first_name="X",
            last_name="Y",
            is_active=True,
            account_status="SUSPENDED",
        )
        assert resolve_account_status(account) == "SUSPENDED"
        assert account.status == "SUSPENDED"

    def test_falls_back_to_derivation(self):
        account = Account(
            email="x@acme.test",
            first_name="X",
            last_name="Y",
            is_active=False,
            account_status=None,
        )
        assert account.status == "PENDING_SETUP"
