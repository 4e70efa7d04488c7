"""FastAPI dependencies for dependency injection."""

import logging
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_engine.config import Settings
from hr_engine.database import init_db
from hr_engine.errors import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    UpstreamError,
)
from hr_engine.identity import IdentityProvider, IdentityProviderError, InvalidTokenError
from hr_engine.models import Account, Employee, utcnow
from hr_engine.security import Action, Entity, Role, require_permission
from hr_engine.services.balance_service import BalanceService
from hr_engine.services.leave_service import LeaveService
from hr_engine.services.policy_service import LeavePolicyService
from hr_engine.services.provisioning_service import ProvisioningService
from hr_engine.services.state_machine import AccountStatus
from hr_engine.services.timesheet_service import TimesheetService

logger = logging.getLogger(__name__)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency.

    Routes commit explicitly; anything left uncommitted is rolled back.
    """
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_identity_provider(request: Request) -> IdentityProvider:
    """Identity provider configured on the application."""
    return request.app.state.identity_provider


@dataclass(frozen=True)
class Caller:
    """Authenticated caller resolved from a bearer token."""

    account_id: UUID
    identity_id: str
    role: str
    company_id: UUID | None
    employee_id: UUID | None

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN.value, Role.SUPERUSER.value)

    def require(self, action: Action, entity: Entity) -> None:
        require_permission(self.role, action.value, entity.value)

    def require_self_or(self, employee_id: UUID, action: Action, entity: Entity) -> None:
        """Allow employees to act on their own records, others need the permission."""
        if self.employee_id == employee_id and self.role == Role.EMPLOYEE.value:
            return
        if not self.is_admin:
            raise PermissionDeniedError("Employees may only access their own records")
        self.require(action, entity)

    def require_company(self, company_id: UUID | None) -> None:
        """Admins only see their own company; superusers see all."""
        if self.role == Role.SUPERUSER.value:
            return
        if company_id is None or company_id != self.company_id:
            raise PermissionDeniedError("Record belongs to another company")


DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Identity = Annotated[IdentityProvider, Depends(get_identity_provider)]


async def get_current_caller(
    db: DbSession,
    identity: Identity,
    authorization: Annotated[str | None, Header()] = None,
) -> Caller:
    """Resolve the caller from the ``Authorization: Bearer`` header."""
    if not authorization:
        raise AuthenticationError("Authorization header is required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Authorization header must be a bearer token")

    try:
        claims = await identity.verify_token(token.strip())
    except InvalidTokenError as e:
        raise AuthenticationError("Invalid or expired token") from e
    except IdentityProviderError as e:
        logger.error("Token verification failed upstream: %s", e)
        raise UpstreamError("Identity provider unavailable") from e

    result = await db.execute(select(Account).where(Account.identity_id == claims.identity_id))
    account = result.scalar_one_or_none()
    if account is None:
        raise AuthenticationError("No account for this identity")
    if account.status in (AccountStatus.SUSPENDED.value, AccountStatus.INACTIVE.value):
        raise PermissionDeniedError(f"Account is {account.status.lower()}")
    if account.locked_until is not None and account.locked_until > utcnow():
        raise PermissionDeniedError(
            "Account is temporarily locked",
            details={"locked_until": account.locked_until.isoformat()},
        )

    employee_id = await db.scalar(
        select(Employee.employee_id).where(Employee.account_id == account.account_id)
    )
    return Caller(
        account_id=account.account_id,
        identity_id=claims.identity_id,
        role=account.role,
        company_id=account.company_id,
        employee_id=employee_id,
    )


async def get_admin_caller(caller: Annotated[Caller, Depends(get_current_caller)]) -> Caller:
    """Caller with account administration rights."""
    caller.require(Action.ADMIN, Entity.ACCOUNT)
    return caller


# Type aliases for cleaner dependency injection
CurrentCaller = Annotated[Caller, Depends(get_current_caller)]
AdminCaller = Annotated[Caller, Depends(get_admin_caller)]


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


AppSettings = Annotated[Settings, Depends(get_app_settings)]


def get_leave_service(db: DbSession, settings: AppSettings) -> LeaveService:
    return LeaveService(db, allow_overdraft=settings.allow_leave_overdraft)


def get_balance_service(db: DbSession) -> BalanceService:
    return BalanceService(db)


def get_policy_service(db: DbSession) -> LeavePolicyService:
    return LeavePolicyService(db)


def get_timesheet_service(db: DbSession) -> TimesheetService:
    return TimesheetService(db)


def get_provisioning_service(
    db: DbSession,
    identity: Identity,
    settings: AppSettings,
) -> ProvisioningService:
    return ProvisioningService(
        db,
        identity,
        lockout_policy=settings.lockout_policy,
        invitation_redirect_url=settings.invitation_redirect_url,
        password_reset_redirect_url=settings.password_reset_redirect_url,
    )


LeaveServiceDep = Annotated[LeaveService, Depends(get_leave_service)]
BalanceServiceDep = Annotated[BalanceService, Depends(get_balance_service)]
LeavePolicyServiceDep = Annotated[LeavePolicyService, Depends(get_policy_service)]
TimesheetServiceDep = Annotated[TimesheetService, Depends(get_timesheet_service)]
ProvisioningServiceDep = Annotated[ProvisioningService, Depends(get_provisioning_service)]


async def ensure_employee_access(
    db: AsyncSession,
    caller: Caller,
    employee_id: UUID,
    action: Action,
    entity: Entity,
) -> Employee:
    """Load an employee the caller may act on, or raise."""
    caller.require_self_or(employee_id, action, entity)
    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError("Employee", employee_id)
    if caller.is_admin:
        caller.require_company(employee.company_id)
    return employee
