"""API routes."""

from hr_engine.api.routes.accounts import router as accounts_router
from hr_engine.api.routes.auth import router as auth_router
from hr_engine.api.routes.employees import router as employees_router
from hr_engine.api.routes.health import router as health_router
from hr_engine.api.routes.leave_policies import router as leave_policies_router
from hr_engine.api.routes.leave_requests import router as leave_requests_router
from hr_engine.api.routes.timesheets import router as timesheets_router

__all__ = [
    "accounts_router",
    "auth_router",
    "employees_router",
    "health_router",
    "leave_policies_router",
    "leave_requests_router",
    "timesheets_router",
]
