"""HR engine services."""

from hr_engine.services.state_machine import (
    AccountStateMachine,
    AccountStatus,
    ApprovalStateMachine,
    ApprovalStatus,
    InvalidTransitionError,
    LeaveRequestStatus,
)
from hr_engine.services.balance_service import BalanceService, BalanceSummary
from hr_engine.services.leave_service import LeaveRequestView, LeaveService
from hr_engine.services.policy_service import LeavePolicyService
from hr_engine.services.timesheet_service import TimesheetService
from hr_engine.services.saga import Saga
from hr_engine.services.provisioning_service import AccountEventType, ProvisioningService

__all__ = [
    "AccountStateMachine",
    "AccountStatus",
    "ApprovalStateMachine",
    "ApprovalStatus",
    "InvalidTransitionError",
    "LeaveRequestStatus",
    "BalanceService",
    "BalanceSummary",
    "LeaveRequestView",
    "LeaveService",
    "LeavePolicyService",
    "TimesheetService",
    "Saga",
    "AccountEventType",
    "ProvisioningService",
]
