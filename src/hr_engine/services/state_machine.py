"""Approval and account status state machines with transition validation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from hr_engine.errors import InvalidStateError

if TYPE_CHECKING:
    from hr_engine.models import Account


class ApprovalStatus(str, Enum):
    """Status values shared by leave requests and timesheets."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# Leave requests use the full approval vocabulary
LeaveRequestStatus = ApprovalStatus


class AccountStatus(str, Enum):
    """Account status values."""

    ACTIVE = "ACTIVE"
    PENDING_SETUP = "PENDING_SETUP"
    PASSWORD_RESET_PENDING = "PASSWORD_RESET_PENDING"
    PASSWORD_RESET_COMPLETED = "PASSWORD_RESET_COMPLETED"
    SUSPENDED = "SUSPENDED"
    INACTIVE = "INACTIVE"


class InvalidTransitionError(InvalidStateError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.reason = reason
        msg = f"Invalid transition from '{_value(from_status)}' to '{_value(to_status)}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, from_status=_value(from_status), to_status=_value(to_status))


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else str(status)


class ApprovalStateMachine:
    """State machine for leave request and timesheet approval.

    Allowed transitions:
    - DRAFT → SUBMITTED
    - DRAFT → CANCELLED
    - SUBMITTED → APPROVED
    - SUBMITTED → REJECTED
    - SUBMITTED → CANCELLED
    - APPROVED, REJECTED, CANCELLED are terminal
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        ApprovalStatus.DRAFT: [ApprovalStatus.SUBMITTED, ApprovalStatus.CANCELLED],
        ApprovalStatus.SUBMITTED: [
            ApprovalStatus.APPROVED,
            ApprovalStatus.REJECTED,
            ApprovalStatus.CANCELLED,
        ],
        ApprovalStatus.APPROVED: [],
        ApprovalStatus.REJECTED: [],
        ApprovalStatus.CANCELLED: [],
    }

    # Statuses where the record can still be edited
    EDITABLE = {ApprovalStatus.DRAFT}

    # Statuses an approver may choose
    DECISIONS = {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}

    TERMINAL = {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED, ApprovalStatus.CANCELLED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            reason = "record is already final" if cls.is_terminal(from_status) else None
            raise InvalidTransitionError(from_status, to_status, reason)

    @classmethod
    def validate_decision(cls, from_status: str, decision: str) -> None:
        """Validate an approver decision against the current status."""
        if decision not in cls.DECISIONS:
            raise InvalidTransitionError(
                from_status, decision, "decision must be APPROVED or REJECTED"
            )
        cls.validate_transition(from_status, decision)

    @classmethod
    def can_edit(cls, status: str) -> bool:
        """Check if the record's fields can still be modified."""
        return status in cls.EDITABLE

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])


class AccountStateMachine:
    """State machine for account status.

    Allowed transitions:
    - PENDING_SETUP → ACTIVE (invitation accepted or admin activation)
    - PENDING_SETUP → PASSWORD_RESET_PENDING
    - PASSWORD_RESET_PENDING → PASSWORD_RESET_COMPLETED
    - PASSWORD_RESET_PENDING → PASSWORD_RESET_PENDING (reset re-sent)
    - PASSWORD_RESET_PENDING / PASSWORD_RESET_COMPLETED → ACTIVE
    - ACTIVE → PASSWORD_RESET_PENDING
    - ACTIVE ⇄ SUSPENDED
    - any non-terminal → INACTIVE (terminal)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        AccountStatus.PENDING_SETUP: [
            AccountStatus.ACTIVE,
            AccountStatus.PASSWORD_RESET_PENDING,
            AccountStatus.SUSPENDED,
            AccountStatus.INACTIVE,
        ],
        AccountStatus.PASSWORD_RESET_PENDING: [
            AccountStatus.PASSWORD_RESET_PENDING,
            AccountStatus.PASSWORD_RESET_COMPLETED,
            AccountStatus.ACTIVE,
            AccountStatus.SUSPENDED,
            AccountStatus.INACTIVE,
        ],
        AccountStatus.PASSWORD_RESET_COMPLETED: [
            AccountStatus.ACTIVE,
            AccountStatus.PASSWORD_RESET_PENDING,
            AccountStatus.SUSPENDED,
            AccountStatus.INACTIVE,
        ],
        AccountStatus.ACTIVE: [
            AccountStatus.PASSWORD_RESET_PENDING,
            AccountStatus.SUSPENDED,
            AccountStatus.INACTIVE,
        ],
        AccountStatus.SUSPENDED: [AccountStatus.ACTIVE, AccountStatus.INACTIVE],
        AccountStatus.INACTIVE: [],  # Terminal state
    }

    # Statuses under which the identity boundary may let a login through
    LOGIN_ALLOWED = {
        AccountStatus.ACTIVE,
        AccountStatus.PASSWORD_RESET_PENDING,
        AccountStatus.PASSWORD_RESET_COMPLETED,
    }

    # Statuses an administrator may set through a plain status update
    ADMIN_SETTABLE = {AccountStatus.ACTIVE, AccountStatus.SUSPENDED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_login(cls, status: str) -> bool:
        return status in cls.LOGIN_ALLOWED

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        return cls.VALID_TRANSITIONS.get(current_status, [])


def derive_account_status(
    *,
    is_active: bool,
    last_login_at: datetime | None,
    last_password_change_at: datetime | None,
    password_reset_requested_at: datetime | None,
    password_reset_completed_at: datetime | None,
) -> AccountStatus:
    """Derive an account status from the boolean flag and timestamps.

    Used for rows that carry no explicit ``account_status``:

    1. Inactive and never used (no login, no password set) → PENDING_SETUP.
    2. Inactive otherwise → INACTIVE. Suspension cannot be told apart from
       deactivation without the explicit column.
    3. A reset requested after the last completion → PASSWORD_RESET_PENDING.
    4. A completed reset not yet followed by a login → PASSWORD_RESET_COMPLETED.
    5. Otherwise → ACTIVE.
    """
    if not is_active:
        if last_login_at is None and last_password_change_at is None:
            return AccountStatus.PENDING_SETUP
        return AccountStatus.INACTIVE

    if password_reset_requested_at is not None and (
        password_reset_completed_at is None
        or password_reset_completed_at < password_reset_requested_at
    ):
        return AccountStatus.PASSWORD_RESET_PENDING

    if password_reset_completed_at is not None and (
        last_login_at is None or last_login_at < password_reset_completed_at
    ):
        return AccountStatus.PASSWORD_RESET_COMPLETED

    return AccountStatus.ACTIVE


def resolve_account_status(account: Account) -> str:
    """Effective status of an account, preferring the explicit column."""
    if account.account_status:
        return AccountStatus(account.account_status).value
    return derive_account_status(
        is_active=account.is_active,
        last_login_at=account.last_login_at,
        last_password_change_at=account.last_password_change_at,
        password_reset_requested_at=account.password_reset_requested_at,
        password_reset_completed_at=account.password_reset_completed_at,
    ).value
