"""ORM models."""

from hr_engine.models.base import Base, TimestampMixin, UpdatedAtMixin, utcnow
from hr_engine.models.company import Company
from hr_engine.models.account import Account, AccountEvent
from hr_engine.models.employee import Employee, EmployeeStatus
from hr_engine.models.leave import LeaveBalance, LeavePolicy, LeaveRequest
from hr_engine.models.timesheet import Timesheet, TimesheetEntry

__all__ = [
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    "utcnow",
    "Company",
    "Account",
    "AccountEvent",
    "Employee",
    "EmployeeStatus",
    "LeaveBalance",
    "LeavePolicy",
    "LeaveRequest",
    "Timesheet",
    "TimesheetEntry",
]
