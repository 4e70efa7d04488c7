"""Account provisioning service.

Links employees to login-capable accounts and owns the account status and
security fields:

- invite: identity invitation + account row + employee link, compensated
  step by step if any later step fails
- link_existing / unlink: attach or detach an existing account
- reset_password / set_password / complete_password_reset / accept_invitation
- update_status / deactivate
- record_failed_login / record_successful_login: lockout bookkeeping for the
  auth boundary
- list_events: provisioning audit trail
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_engine.config import LockoutPolicy, get_settings
from hr_engine.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from hr_engine.identity.base import IdentityProvider, IdentityProviderError
from hr_engine.models import Account, AccountEvent, Employee, utcnow
from hr_engine.security import Role, hash_password, validate_password
from hr_engine.services.saga import Saga
from hr_engine.services.state_machine import AccountStateMachine, AccountStatus

logger = logging.getLogger(__name__)


class AccountEventType:
    """Audit event types written to ``account_event``."""

    ACCOUNT_CREATED = "ACCOUNT_CREATED"
    ACCOUNT_LINKED = "ACCOUNT_LINKED"
    ACCOUNT_UNLINKED = "ACCOUNT_UNLINKED"
    INVITATION_ACCEPTED = "INVITATION_ACCEPTED"
    PASSWORD_RESET_REQUESTED = "PASSWORD_RESET_REQUESTED"
    PASSWORD_RESET_COMPLETED = "PASSWORD_RESET_COMPLETED"
    PASSWORD_UPDATED_BY_ADMIN = "PASSWORD_UPDATED_BY_ADMIN"
    ACCOUNT_STATUS_CHANGED = "ACCOUNT_STATUS_CHANGED"
    LOGIN_FAILED = "LOGIN_FAILED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    LOGIN_SUCCEEDED = "LOGIN_SUCCEEDED"


class ProvisioningService:
    """Service for the employee-account lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        identity_provider: IdentityProvider,
        *,
        lockout_policy: LockoutPolicy | None = None,
        invitation_redirect_url: str | None = None,
        password_reset_redirect_url: str | None = None,
    ):
        self.session = session
        self.identity = identity_provider
        if lockout_policy is None or invitation_redirect_url is None or password_reset_redirect_url is None:
            settings = get_settings()
            lockout_policy = lockout_policy or settings.lockout_policy
            invitation_redirect_url = invitation_redirect_url or settings.invitation_redirect_url
            password_reset_redirect_url = (
                password_reset_redirect_url or settings.password_reset_redirect_url
            )
        self.lockout_policy = lockout_policy
        self.invitation_redirect_url = invitation_redirect_url
        self.password_reset_redirect_url = password_reset_redirect_url

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_account(self, account_id: UUID) -> Account:
        account = await self.session.get(Account, account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        return account

    async def get_employee(self, employee_id: UUID) -> Employee:
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        return employee

    async def find_account_by_email(self, email: str) -> Account | None:
        result = await self.session.execute(
            select(Account).where(func.lower(Account.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def find_account_by_identity(self, identity_id: str) -> Account | None:
        result = await self.session.execute(
            select(Account).where(Account.identity_id == identity_id)
        )
        return result.scalar_one_or_none()

    async def find_linked_employee(self, account_id: UUID) -> Employee | None:
        result = await self.session.execute(
            select(Employee).where(Employee.account_id == account_id)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Invitation and linking
    # ------------------------------------------------------------------

    async def invite(
        self,
        employee_id: UUID,
        role: str = Role.EMPLOYEE.value,
        *,
        actor_account_id: UUID | None = None,
    ) -> Account:
        """Invite an employee and link the new account to them.

        Steps run as a saga: identity invitation, account insert, employee
        link. If a step fails, earlier steps are undone in reverse order so
        that no orphan account or dangling invitation is left behind.
        """
        try:
            role = Role(role).value
        except ValueError as e:
            raise ValidationError(f"Unknown role: {role!r}", details={"field": "role"}) from e

        employee = await self.get_employee(employee_id)
        if employee.account_id is not None:
            raise ConflictError(
                "Employee already has an account",
                details={"employee_id": str(employee_id), "account_id": str(employee.account_id)},
            )
        if await self.find_account_by_email(employee.email) is not None:
            raise ConflictError(
                "An account with this email already exists",
                details={"email": employee.email},
            )

        async with Saga("invite_employee") as saga:
            try:
                invited = await self.identity.invite_user(
                    employee.email,
                    redirect_to=self.invitation_redirect_url,
                    metadata={
                        "first_name": employee.first_name,
                        "last_name": employee.last_name,
                        "employee_id": str(employee.employee_id),
                        "role": role,
                    },
                )
            except IdentityProviderError as e:
                logger.error("Identity invitation for employee %s failed: %s", employee_id, e)
                raise UpstreamError("Failed to send invitation") from e
            saga.on_rollback(
                "revoke identity invitation",
                lambda: self.identity.delete_user(invited.identity_id),
            )

            account = await self._insert_account(employee, role, invited.identity_id)
            saga.on_rollback("delete account", lambda: self._delete_account(account.account_id))

            await self._link(employee.employee_id, account.account_id)
            saga.on_rollback("unlink employee", lambda: self._clear_link(employee.employee_id))

            await self._record_event(
                account.account_id,
                AccountEventType.ACCOUNT_CREATED,
                f"Account created and invitation sent for employee {employee.full_name}",
                actor_account_id=actor_account_id,
                metadata={
                    "employee_id": str(employee.employee_id),
                    "employee_email": employee.email,
                    "role": role,
                },
            )

        await self.session.refresh(employee)
        logger.info(
            "Invited employee %s as %s (account %s)", employee_id, role, account.account_id
        )
        return account

    async def link_existing(
        self,
        employee_id: UUID,
        account_id: UUID,
        *,
        actor_account_id: UUID | None = None,
    ) -> Employee:
        """Attach an unlinked account to an employee without one."""
        employee = await self.get_employee(employee_id)
        account = await self.get_account(account_id)

        if employee.account_id is not None:
            raise ConflictError(
                "Employee already has a linked account",
                details={"employee_id": str(employee_id)},
            )
        other = await self.find_linked_employee(account_id)
        if other is not None:
            raise ConflictError(
                "Account is already linked to another employee",
                details={"account_id": str(account_id), "employee_id": str(other.employee_id)},
            )
        if account.status == AccountStatus.INACTIVE.value:
            raise InvalidStateError(
                "Cannot link an inactive account", from_status=account.status
            )

        await self._link(employee_id, account_id)
        await self._record_event(
            account_id,
            AccountEventType.ACCOUNT_LINKED,
            f"Account linked to employee {employee.full_name}",
            actor_account_id=actor_account_id,
            metadata={"employee_id": str(employee_id)},
        )
        await self.session.refresh(employee)
        return employee

    async def unlink(
        self,
        account_id: UUID,
        *,
        actor_account_id: UUID | None = None,
    ) -> Employee:
        """Clear the employee's account reference; the account is kept."""
        await self.get_account(account_id)
        employee = await self.find_linked_employee(account_id)
        if employee is None:
            raise NotFoundError("Employee linked to account", account_id)

        await self._clear_link(employee.employee_id)
        await self._record_event(
            account_id,
            AccountEventType.ACCOUNT_UNLINKED,
            f"Account unlinked from employee {employee.full_name}",
            actor_account_id=actor_account_id,
            metadata={"employee_id": str(employee.employee_id)},
        )
        await self.session.refresh(employee)
        return employee

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    async def reset_password(
        self,
        account_id: UUID,
        *,
        actor_account_id: UUID | None = None,
    ) -> Account:
        """Send a reset email through the identity provider.

        Records ``password_reset_requested_at``; ``is_active`` is untouched.
        """
        account = await self.get_account(account_id)
        if not account.identity_id:
            raise InvalidStateError("Account is not linked to an identity")
        AccountStateMachine.validate_transition(
            account.status, AccountStatus.PASSWORD_RESET_PENDING
        )

        try:
            await self.identity.send_password_reset(
                account.email, redirect_to=self.password_reset_redirect_url
            )
        except IdentityProviderError as e:
            logger.error("Password reset email for account %s failed: %s", account_id, e)
            raise UpstreamError("Failed to send password reset email") from e

        account.password_reset_requested_at = utcnow()
        old_status = account.status
        account.account_status = AccountStatus.PASSWORD_RESET_PENDING.value
        await self.session.flush()

        await self._record_event(
            account_id,
            AccountEventType.PASSWORD_RESET_REQUESTED,
            "Password reset email sent",
            actor_account_id=actor_account_id,
            metadata={"old_status": old_status},
        )
        return account

    async def set_password(
        self,
        account_id: UUID,
        new_password: str,
        *,
        actor_account_id: UUID | None = None,
    ) -> Account:
        """Admin override: set the password directly.

        The provider is updated first so a provider failure leaves nothing
        persisted. Only the bcrypt hash is stored.
        """
        validate_password(new_password)
        account = await self.get_account(account_id)
        old_status = account.status
        if old_status == AccountStatus.INACTIVE.value:
            raise InvalidStateError(
                "Cannot set the password of an inactive account", from_status=old_status
            )

        if account.identity_id:
            try:
                await self.identity.update_password(account.identity_id, new_password)
            except IdentityProviderError as e:
                logger.error("Password update for account %s failed: %s", account_id, e)
                raise UpstreamError("Failed to update password") from e

        account.password_hash = hash_password(new_password)
        account.last_password_change_at = utcnow()
        account.password_reset_requested_at = None
        if old_status != AccountStatus.SUSPENDED.value:
            self._apply_status(account, AccountStatus.ACTIVE, allow_same=True)
        await self.session.flush()

        await self._record_event(
            account_id,
            AccountEventType.PASSWORD_UPDATED_BY_ADMIN,
            f"Password updated by admin for account {account.email}",
            actor_account_id=actor_account_id,
            metadata={"old_status": old_status, "new_status": account.status},
        )
        return account

    async def accept_invitation(self, account_id: UUID, password: str) -> Account:
        """Finish setup of an invited account: PENDING_SETUP → ACTIVE."""
        validate_password(password)
        account = await self.get_account(account_id)
        if account.status != AccountStatus.PENDING_SETUP.value:
            raise InvalidStateError(
                "Invitation already accepted or revoked",
                from_status=account.status,
                to_status=AccountStatus.ACTIVE.value,
            )

        now = utcnow()
        account.password_hash = hash_password(password)
        account.last_password_change_at = now
        self._apply_status(account, AccountStatus.ACTIVE)
        await self.session.flush()

        await self._record_event(
            account_id,
            AccountEventType.INVITATION_ACCEPTED,
            "Invitation accepted",
            actor_account_id=account_id,
        )
        return account

    async def complete_password_reset(self, account_id: UUID, password: str) -> Account:
        """Record a finished reset: PASSWORD_RESET_PENDING → PASSWORD_RESET_COMPLETED."""
        validate_password(password)
        account = await self.get_account(account_id)
        AccountStateMachine.validate_transition(
            account.status, AccountStatus.PASSWORD_RESET_COMPLETED
        )

        now = utcnow()
        account.password_hash = hash_password(password)
        account.password_reset_completed_at = now
        account.last_password_change_at = now
        self._apply_status(account, AccountStatus.PASSWORD_RESET_COMPLETED)
        await self.session.flush()

        await self._record_event(
            account_id,
            AccountEventType.PASSWORD_RESET_COMPLETED,
            "Password reset completed",
            actor_account_id=account_id,
        )
        return account

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def update_status(
        self,
        account_id: UUID,
        new_status: str,
        *,
        actor_account_id: UUID | None = None,
    ) -> Account:
        """Set ACTIVE or SUSPENDED. Suspension blocks logins at the auth boundary."""
        if new_status not in AccountStateMachine.ADMIN_SETTABLE:
            raise ValidationError(
                "Invalid status. Must be one of: ACTIVE, SUSPENDED",
                details={"status": str(new_status)},
            )
        account = await self.get_account(account_id)
        old_status = account.status
        self._apply_status(account, AccountStatus(new_status))
        await self.session.flush()

        await self._record_event(
            account_id,
            AccountEventType.ACCOUNT_STATUS_CHANGED,
            f"Account status changed from {old_status} to {account.status}",
            actor_account_id=actor_account_id,
            metadata={"old_status": old_status, "new_status": account.status},
        )
        logger.info("Account %s status %s -> %s", account_id, old_status, account.status)
        return account

    async def deactivate(
        self,
        account_id: UUID,
        *,
        actor_account_id: UUID | None = None,
    ) -> Account:
        """Terminal deactivation."""
        account = await self.get_account(account_id)
        old_status = account.status
        self._apply_status(account, AccountStatus.INACTIVE)
        await self.session.flush()

        await self._record_event(
            account_id,
            AccountEventType.ACCOUNT_STATUS_CHANGED,
            f"Account status changed from {old_status} to {AccountStatus.INACTIVE.value}",
            actor_account_id=actor_account_id,
            metadata={"old_status": old_status, "new_status": AccountStatus.INACTIVE.value},
        )
        logger.info("Account %s deactivated", account_id)
        return account

    # ------------------------------------------------------------------
    # Login bookkeeping
    # ------------------------------------------------------------------

    def is_locked(self, account: Account, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return account.locked_until is not None and account.locked_until > now

    async def record_failed_login(self, account_id: UUID) -> Account:
        """Count a failed login and lock the account once the threshold is hit.

        Failures while already locked are counted but do not extend the lock.
        An expired lock starts a fresh count.
        """
        account = await self.get_account(account_id)
        now = utcnow()

        if account.locked_until is not None and account.locked_until <= now:
            account.locked_until = None
            account.failed_login_attempts = 0

        already_locked = self.is_locked(account, now)
        account.failed_login_attempts += 1
        await self._record_event(
            account_id,
            AccountEventType.LOGIN_FAILED,
            "Failed login attempt",
            event_status="FAILURE",
            metadata={"failed_login_attempts": account.failed_login_attempts},
        )

        if (
            not already_locked
            and account.failed_login_attempts >= self.lockout_policy.max_attempts
        ):
            account.locked_until = now + self.lockout_policy.lockout_duration
            await self._record_event(
                account_id,
                AccountEventType.ACCOUNT_LOCKED,
                f"Account locked after {account.failed_login_attempts} failed attempts",
                metadata={"locked_until": account.locked_until.isoformat()},
            )
            logger.warning(
                "Account %s locked until %s", account_id, account.locked_until.isoformat()
            )

        await self.session.flush()
        return account

    async def record_successful_login(self, account_id: UUID) -> Account:
        """Reset failure counters after a successful login."""
        account = await self.get_account(account_id)
        now = utcnow()
        if self.is_locked(account, now):
            raise InvalidStateError("Account is temporarily locked")
        if not AccountStateMachine.can_login(account.status):
            raise InvalidStateError(
                f"Login not allowed for {account.status} accounts",
                from_status=account.status,
            )

        account.failed_login_attempts = 0
        account.locked_until = None
        account.last_login_at = now
        if account.status == AccountStatus.PASSWORD_RESET_COMPLETED.value:
            self._apply_status(account, AccountStatus.ACTIVE)
        await self.session.flush()

        await self._record_event(account_id, AccountEventType.LOGIN_SUCCEEDED, "Login succeeded")
        return account

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    async def list_events(self, account_id: UUID, limit: int = 100) -> list[AccountEvent]:
        """Most recent audit events for an account, newest first."""
        await self.get_account(account_id)
        result = await self.session.execute(
            select(AccountEvent)
            .where(AccountEvent.account_id == account_id)
            .order_by(AccountEvent.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply_status(
        self,
        account: Account,
        to_status: AccountStatus,
        *,
        allow_same: bool = False,
    ) -> None:
        """Validate and write an account status, keeping ``is_active`` in step."""
        from_status = account.status
        if not (allow_same and from_status == to_status.value):
            AccountStateMachine.validate_transition(from_status, to_status)

        account.account_status = to_status.value
        if to_status == AccountStatus.ACTIVE:
            account.is_active = True
        elif to_status in (AccountStatus.SUSPENDED, AccountStatus.INACTIVE):
            account.is_active = False

    async def _insert_account(self, employee: Employee, role: str, identity_id: str) -> Account:
        account = Account(
            identity_id=identity_id,
            company_id=employee.company_id,
            email=employee.email.strip().lower(),
            first_name=employee.first_name,
            last_name=employee.last_name,
            role=role,
            is_active=False,
            account_status=AccountStatus.PENDING_SETUP.value,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(account)
        except IntegrityError as e:
            raise ConflictError(
                "An account with this email already exists",
                details={"email": employee.email},
            ) from e
        return account

    async def _delete_account(self, account_id: UUID) -> None:
        await self.session.execute(
            delete(AccountEvent).where(AccountEvent.account_id == account_id)
        )
        await self.session.execute(
            delete(Account)
            .where(Account.account_id == account_id)
            .execution_options(synchronize_session="fetch")
        )

    async def _link(self, employee_id: UUID, account_id: UUID) -> None:
        """Set ``employee.account_id`` only if it is still empty."""
        try:
            async with self.session.begin_nested():
                result = await self.session.execute(
                    update(Employee)
                    .where(Employee.employee_id == employee_id, Employee.account_id.is_(None))
                    .values(account_id=account_id)
                    .execution_options(synchronize_session=False)
                )
        except IntegrityError as e:
            raise ConflictError(
                "Account is already linked to another employee",
                details={"account_id": str(account_id)},
            ) from e
        if result.rowcount == 0:
            raise ConflictError(
                "Employee already has an account",
                details={"employee_id": str(employee_id)},
            )

    async def _clear_link(self, employee_id: UUID) -> None:
        await self.session.execute(
            update(Employee)
            .where(Employee.employee_id == employee_id)
            .values(account_id=None)
            .execution_options(synchronize_session=False)
        )

    async def _record_event(
        self,
        account_id: UUID,
        event_type: str,
        description: str,
        *,
        actor_account_id: UUID | None = None,
        event_status: str = "SUCCESS",
        metadata: dict[str, Any] | None = None,
    ) -> AccountEvent:
        event = AccountEvent(
            account_id=account_id,
            event_type=event_type,
            event_status=event_status,
            description=description,
            actor_account_id=actor_account_id,
            metadata_json=metadata,
        )
        self.session.add(event)
        await self.session.flush()
        return event
