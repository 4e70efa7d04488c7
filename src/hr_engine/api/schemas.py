"""Pydantic schemas for API request/response models.

Request bodies forbid unknown fields so loosely-typed payloads are rejected
before they reach the services.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RequestModel(BaseModel):
    """Base for request bodies."""

    model_config = ConfigDict(extra="forbid")


class ErrorResponse(BaseModel):
    """Error body rendered for every domain error."""

    detail: str
    code: str
    details: dict[str, Any] | None = None


# ============================================================================
# Leave request schemas
# ============================================================================


class LeaveRequestCreate(RequestModel):
    """Schema for creating a leave request.

    ``employee_id`` defaults to the caller's own employee record.
    ``submit=False`` creates a DRAFT (administrators drafting on behalf).
    """

    employee_id: UUID | None = None
    leave_policy_id: UUID
    start_date: date
    end_date: date
    unit: Literal["DAYS", "HOURS"] = "DAYS"
    quantity: Decimal
    reason: str | None = None
    submit: bool = True


class LeaveRequestUpdate(RequestModel):
    """Fields editable while a request is DRAFT."""

    start_date: date | None = None
    end_date: date | None = None
    unit: Literal["DAYS", "HOURS"] | None = None
    quantity: Decimal | None = None
    reason: str | None = None


class DecisionRequest(RequestModel):
    """Approver decision on a submitted request or timesheet."""

    status: Literal["APPROVED", "REJECTED"]
    reason: str | None = None


class LeaveRequestResponse(BaseModel):
    """Schema for leave request response."""

    model_config = ConfigDict(from_attributes=True)

    leave_request_id: UUID
    employee_id: UUID
    leave_policy_id: UUID
    start_date: date
    end_date: date
    unit: str
    quantity: Decimal
    status: str
    reason: str | None = None
    exceeds_balance: bool
    balance_applied: bool
    created_by_account_id: UUID | None = None
    approver_account_id: UUID | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    decided_at: datetime | None = None
    decision_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    employee_name: str | None = None
    employee_email: str | None = None
    policy_code: str | None = None
    policy_name: str | None = None


class LeaveRequestListResponse(BaseModel):
    items: list[LeaveRequestResponse]
    total: int


# ============================================================================
# Leave policy schemas
# ============================================================================


class LeavePolicyCreate(RequestModel):
    """Schema for creating a leave policy.

    ``company_id`` defaults to the caller's company; only superusers may
    name another one.
    """

    company_id: UUID | None = None
    code: str = Field(min_length=1, max_length=10)
    name: str = Field(min_length=1, max_length=100)
    unit: Literal["DAYS", "HOURS"] = "DAYS"
    accrual_rule: dict[str, Any] = Field(default_factory=dict)
    carry_over_max: Decimal | None = Field(default=None, ge=0)


class LeavePolicyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    leave_policy_id: UUID
    company_id: UUID
    code: str
    name: str
    unit: str
    accrual_rule: dict[str, Any]
    carry_over_max: Decimal | None = None
    created_at: datetime


class LeavePolicyListResponse(BaseModel):
    items: list[LeavePolicyResponse]
    total: int


# ============================================================================
# Leave balance schemas
# ============================================================================


class LeaveBalanceResponse(BaseModel):
    """Schema for one balance period."""

    model_config = ConfigDict(from_attributes=True)

    leave_balance_id: UUID
    employee_id: UUID
    leave_policy_id: UUID
    period_start: date
    period_end: date
    opening: Decimal
    accrued: Decimal
    taken: Decimal
    adjusted: Decimal
    closing: Decimal


class BalanceSummaryResponse(BaseModel):
    """All balance periods for an employee.

    ``configured`` is false when no balance has been set up.
    """

    employee_id: UUID
    configured: bool
    balances: list[LeaveBalanceResponse]


class OpenPeriodRequest(RequestModel):
    leave_policy_id: UUID
    period_start: date
    period_end: date


class AdjustmentRequest(RequestModel):
    amount: Decimal
    reason: str | None = None


# ============================================================================
# Employee / account schemas
# ============================================================================


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    company_id: UUID
    first_name: str
    last_name: str
    email: str
    employment_type: str
    position: str | None = None
    status: str
    account_id: UUID | None = None


class AccountResponse(BaseModel):
    """Account view. Credentials are never serialized."""

    model_config = ConfigDict(from_attributes=True)

    account_id: UUID
    identity_id: str | None = None
    company_id: UUID | None = None
    email: str
    first_name: str
    last_name: str
    role: str
    is_active: bool
    status: str
    failed_login_attempts: int
    locked_until: datetime | None = None
    last_login_at: datetime | None = None
    last_password_change_at: datetime | None = None
    password_reset_requested_at: datetime | None = None
    password_reset_completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class InviteEmployeeRequest(RequestModel):
    employee_id: UUID
    role: Literal["ADMIN", "EMPLOYEE", "SUPERUSER"] = "EMPLOYEE"


class InviteEmployeeResponse(BaseModel):
    account: AccountResponse
    employee_id: UUID
    message: str


class LinkAccountRequest(RequestModel):
    account_id: UUID


class StatusUpdateRequest(RequestModel):
    status: Literal["ACTIVE", "SUSPENDED"]


class PasswordRequest(RequestModel):
    password: str = Field(min_length=1)


class MessageResponse(BaseModel):
    message: str


class AccountEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_event_id: UUID
    account_id: UUID
    event_type: str
    event_status: str
    description: str | None = None
    actor_account_id: UUID | None = None
    metadata_json: dict[str, Any] | None = Field(default=None, serialization_alias="metadata")
    created_at: datetime


# ============================================================================
# Timesheet schemas
# ============================================================================


class TimesheetCreate(RequestModel):
    employee_id: UUID | None = None
    week_start: date


class TimesheetEntryCreate(RequestModel):
    work_date: date
    hours: Decimal
    description: str | None = None


class TimesheetEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timesheet_entry_id: UUID
    work_date: date
    hours: Decimal
    description: str | None = None


class TimesheetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timesheet_id: UUID
    employee_id: UUID
    week_start: date
    status: str
    submitted_at: datetime | None = None
    approver_account_id: UUID | None = None
    approved_at: datetime | None = None
    decided_at: datetime | None = None
    decision_reason: str | None = None
    total_hours: Decimal
    entries: list[TimesheetEntryResponse]


class TimesheetListResponse(BaseModel):
    items: list[TimesheetResponse]
    total: int
