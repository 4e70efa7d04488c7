"""Tests for account provisioning, password and lockout flows."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from hr_engine.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from hr_engine.identity import LocalIdentityProvider
from hr_engine.models import Account, AccountEvent, Employee
from hr_engine.security import verify_password
from hr_engine.services.provisioning_service import AccountEventType, ProvisioningService


STRONG_PASSWORD = "correct-horse-battery"


async def count_accounts(session, email):
    result = await session.execute(
        select(func.count()).select_from(Account).where(Account.email == email)
    )
    return result.scalar_one()


async def event_types(session, account_id):
    result = await session.execute(
        select(AccountEvent.event_type)
        .where(AccountEvent.account_id == account_id)
        .order_by(AccountEvent.created_at)
    )
    return list(result.scalars().all())


class TestInvite:
    async def test_invite_creates_pending_linked_account(
        self, session, provisioning, identity, new_hire, admin_account
    ):
        account = await provisioning.invite(
            new_hire.employee_id, "EMPLOYEE", actor_account_id=admin_account.account_id
        )

        assert account.status == "PENDING_SETUP"
        assert account.is_active is False
        assert account.email == "nina.newhire@acme.test"
        assert account.company_id == new_hire.company_id
        assert account.password_hash is None
        assert new_hire.account_id == account.account_id

        assert account.identity_id in identity.users
        invited = identity.users[account.identity_id]
        assert invited["redirect_to"] == "http://test/auth/accept-invitation"
        assert invited["metadata"]["employee_id"] == str(new_hire.employee_id)

        events = await provisioning.list_events(account.account_id)
        assert [e.event_type for e in events] == [AccountEventType.ACCOUNT_CREATED]
        assert events[0].actor_account_id == admin_account.account_id
        assert events[0].metadata_json["role"] == "EMPLOYEE"

    async def test_invite_admin_role(self, provisioning, new_hire):
        account = await provisioning.invite(new_hire.employee_id, "ADMIN")
        assert account.role == "ADMIN"

    async def test_unknown_role_rejected(self, provisioning, new_hire):
        with pytest.raises(ValidationError):
            await provisioning.invite(new_hire.employee_id, "OWNER")

    async def test_unknown_employee(self, provisioning):
        with pytest.raises(NotFoundError):
            await provisioning.invite(uuid4())

    async def test_second_invite_conflicts(self, session, provisioning, identity, new_hire):
        await provisioning.invite(new_hire.employee_id)

        with pytest.raises(ConflictError):
            await provisioning.invite(new_hire.employee_id)

        assert await count_accounts(session, "nina.newhire@acme.test") == 1
        assert len(identity.users) == 1

    async def test_existing_email_conflicts(self, session, provisioning, identity, new_hire):
        session.add(
            Account(
                email="nina.newhire@acme.test",
                first_name="Nina",
                last_name="Elsewhere",
                role="EMPLOYEE",
                is_active=True,
                account_status="ACTIVE",
            )
        )
        await session.flush()

        with pytest.raises(ConflictError):
            await provisioning.invite(new_hire.employee_id)

        assert await count_accounts(session, "nina.newhire@acme.test") == 1
        assert identity.users == {}
        assert new_hire.account_id is None

    async def test_provider_failure_persists_nothing(
        self, session, lockout_policy, new_hire
    ):
        failing = LocalIdentityProvider("test-secret-key", fail_on={"invite_user"})
        service = ProvisioningService(
            session,
            failing,
            lockout_policy=lockout_policy,
            invitation_redirect_url="http://test/invite",
            password_reset_redirect_url="http://test/reset",
        )

        with pytest.raises(UpstreamError):
            await service.invite(new_hire.employee_id)

        assert await count_accounts(session, "nina.newhire@acme.test") == 0
        assert failing.users == {}

    async def test_link_failure_compensates_earlier_steps(
        self, session, provisioning, identity, new_hire, monkeypatch
    ):
        async def refuse_link(employee_id, account_id):
            raise ConflictError("Employee already has an account")

        monkeypatch.setattr(provisioning, "_link", refuse_link)

        with pytest.raises(ConflictError):
            await provisioning.invite(new_hire.employee_id)

        # Identity invitation revoked, account row removed, employee untouched
        assert identity.users == {}
        assert await count_accounts(session, "nina.newhire@acme.test") == 0
        employee = await session.get(Employee, new_hire.employee_id)
        assert employee.account_id is None


class TestLinking:
    async def test_link_existing_account(self, session, provisioning, new_hire):
        account = Account(
            email="nina@personal.test",
            first_name="Nina",
            last_name="Newhire",
            role="EMPLOYEE",
            is_active=True,
            account_status="ACTIVE",
        )
        session.add(account)
        await session.flush()

        employee = await provisioning.link_existing(new_hire.employee_id, account.account_id)

        assert employee.account_id == account.account_id
        assert await event_types(session, account.account_id) == [AccountEventType.ACCOUNT_LINKED]

    async def test_link_to_already_linked_employee_conflicts(
        self, session, provisioning, employee, employee_account, admin_account
    ):
        with pytest.raises(ConflictError):
            await provisioning.link_existing(employee.employee_id, admin_account.account_id)

    async def test_link_account_used_elsewhere_conflicts(
        self, provisioning, new_hire, employee_account
    ):
        with pytest.raises(ConflictError):
            await provisioning.link_existing(new_hire.employee_id, employee_account.account_id)

    async def test_link_inactive_account_rejected(self, session, provisioning, new_hire):
        account = Account(
            email="gone@acme.test",
            first_name="Gone",
            last_name="Away",
            is_active=False,
            account_status="INACTIVE",
        )
        session.add(account)
        await session.flush()

        with pytest.raises(InvalidStateError):
            await provisioning.link_existing(new_hire.employee_id, account.account_id)

    async def test_unlink_keeps_account(self, session, provisioning, employee, employee_account):
        unlinked = await provisioning.unlink(employee_account.account_id)

        assert unlinked.employee_id == employee.employee_id
        assert unlinked.account_id is None
        assert await session.get(Account, employee_account.account_id) is not None
        assert AccountEventType.ACCOUNT_UNLINKED in await event_types(
            session, employee_account.account_id
        )

    async def test_unlink_without_employee(self, provisioning, admin_account):
        with pytest.raises(NotFoundError):
            await provisioning.unlink(admin_account.account_id)


class TestPasswords:
    async def test_reset_password_sends_email(self, provisioning, identity, employee_account):
        account = await provisioning.reset_password(employee_account.account_id)

        assert account.status == "PASSWORD_RESET_PENDING"
        assert account.password_reset_requested_at is not None
        assert account.is_active is True
        assert identity.sent_resets == ["erin@acme.test"]

    async def test_reset_requires_identity(self, session, provisioning):
        account = Account(
            email="local@acme.test",
            first_name="Lo",
            last_name="Cal",
            is_active=True,
            account_status="ACTIVE",
        )
        session.add(account)
        await session.flush()

        with pytest.raises(InvalidStateError):
            await provisioning.reset_password(account.account_id)

    async def test_reset_not_allowed_when_suspended(self, provisioning, employee_account):
        await provisioning.update_status(employee_account.account_id, "SUSPENDED")

        with pytest.raises(InvalidStateError):
            await provisioning.reset_password(employee_account.account_id)

    async def test_set_password_stores_hash_only(self, provisioning, identity, employee_account):
        await provisioning.reset_password(employee_account.account_id)

        account = await provisioning.set_password(employee_account.account_id, STRONG_PASSWORD)

        assert account.password_hash != STRONG_PASSWORD
        assert verify_password(STRONG_PASSWORD, account.password_hash)
        assert account.last_password_change_at is not None
        assert account.password_reset_requested_at is None
        assert account.status == "ACTIVE"
        assert account.is_active is True
        assert identity.users[account.identity_id]["password"] == "set"

    async def test_set_password_activates_pending_account(self, provisioning, new_hire):
        invited = await provisioning.invite(new_hire.employee_id)

        account = await provisioning.set_password(invited.account_id, STRONG_PASSWORD)

        assert account.status == "ACTIVE"
        assert account.is_active is True

    async def test_set_password_keeps_suspension(self, provisioning, employee_account):
        await provisioning.update_status(employee_account.account_id, "SUSPENDED")

        account = await provisioning.set_password(employee_account.account_id, STRONG_PASSWORD)

        assert account.status == "SUSPENDED"
        assert account.is_active is False

    async def test_set_password_on_inactive_account(self, provisioning, employee_account):
        await provisioning.deactivate(employee_account.account_id)

        with pytest.raises(InvalidStateError):
            await provisioning.set_password(employee_account.account_id, STRONG_PASSWORD)

    async def test_weak_password_rejected(self, provisioning, employee_account):
        with pytest.raises(ValidationError):
            await provisioning.set_password(employee_account.account_id, "short")

    async def test_set_password_provider_failure_persists_nothing(
        self, session, lockout_policy, identity, employee_account
    ):
        identity.fail_on.add("update_password")
        service = ProvisioningService(
            session,
            identity,
            lockout_policy=lockout_policy,
            invitation_redirect_url="http://test/invite",
            password_reset_redirect_url="http://test/reset",
        )

        with pytest.raises(UpstreamError):
            await service.set_password(employee_account.account_id, STRONG_PASSWORD)

        account = await session.get(Account, employee_account.account_id)
        assert account.password_hash is None
        assert account.last_password_change_at is None
        assert await event_types(session, account.account_id) == []

    async def test_accept_invitation(self, provisioning, new_hire):
        invited = await provisioning.invite(new_hire.employee_id)

        account = await provisioning.accept_invitation(invited.account_id, STRONG_PASSWORD)

        assert account.status == "ACTIVE"
        assert account.is_active is True
        assert verify_password(STRONG_PASSWORD, account.password_hash)

        with pytest.raises(InvalidStateError):
            await provisioning.accept_invitation(invited.account_id, STRONG_PASSWORD)

    async def test_complete_reset_then_login(self, provisioning, employee_account):
        await provisioning.reset_password(employee_account.account_id)

        account = await provisioning.complete_password_reset(
            employee_account.account_id, STRONG_PASSWORD
        )
        assert account.status == "PASSWORD_RESET_COMPLETED"
        assert account.password_reset_completed_at is not None

        account = await provisioning.record_successful_login(employee_account.account_id)
        assert account.status == "ACTIVE"
        assert account.last_login_at is not None

    async def test_complete_reset_without_request(self, provisioning, employee_account):
        with pytest.raises(InvalidStateError):
            await provisioning.complete_password_reset(
                employee_account.account_id, STRONG_PASSWORD
            )


class TestStatus:
    async def test_suspend_and_reactivate(self, session, provisioning, employee_account, admin_account):
        account = await provisioning.update_status(
            employee_account.account_id, "SUSPENDED", actor_account_id=admin_account.account_id
        )
        assert account.status == "SUSPENDED"
        assert account.is_active is False

        account = await provisioning.update_status(employee_account.account_id, "ACTIVE")
        assert account.status == "ACTIVE"
        assert account.is_active is True

        events = await provisioning.list_events(employee_account.account_id)
        assert {e.event_type for e in events} == {AccountEventType.ACCOUNT_STATUS_CHANGED}

    async def test_status_must_be_admin_settable(self, provisioning, employee_account):
        for value in ("INACTIVE", "PENDING_SETUP", "bogus"):
            with pytest.raises(ValidationError):
                await provisioning.update_status(employee_account.account_id, value)

    async def test_deactivate_is_terminal(self, provisioning, employee_account):
        account = await provisioning.deactivate(employee_account.account_id)
        assert account.status == "INACTIVE"
        assert account.is_active is False

        with pytest.raises(InvalidStateError):
            await provisioning.update_status(employee_account.account_id, "ACTIVE")

    async def test_unknown_account(self, provisioning):
        with pytest.raises(NotFoundError):
            await provisioning.deactivate(uuid4())


class TestLoginBookkeeping:
    async def test_lock_after_max_attempts(self, session, provisioning, employee_account):
        for _ in range(2):
            account = await provisioning.record_failed_login(employee_account.account_id)
            assert account.locked_until is None

        account = await provisioning.record_failed_login(employee_account.account_id)

        assert account.failed_login_attempts == 3
        assert provisioning.is_locked(account) is True
        types = await event_types(session, account.account_id)
        assert types.count(AccountEventType.LOGIN_FAILED) == 3
        assert types.count(AccountEventType.ACCOUNT_LOCKED) == 1

    async def test_failures_while_locked_do_not_extend_lock(self, provisioning, employee_account):
        for _ in range(3):
            account = await provisioning.record_failed_login(employee_account.account_id)
        locked_until = account.locked_until

        account = await provisioning.record_failed_login(employee_account.account_id)

        assert account.failed_login_attempts == 4
        assert account.locked_until == locked_until

    async def test_expired_lock_starts_fresh_count(self, session, provisioning, employee_account):
        employee_account.failed_login_attempts = 3
        employee_account.locked_until = datetime.now(timezone.utc) - timedelta(minutes=1)
        await session.flush()

        account = await provisioning.record_failed_login(employee_account.account_id)

        assert account.failed_login_attempts == 1
        assert account.locked_until is None

    async def test_successful_login_resets_counter(self, provisioning, employee_account):
        await provisioning.record_failed_login(employee_account.account_id)

        account = await provisioning.record_successful_login(employee_account.account_id)

        assert account.failed_login_attempts == 0
        assert account.last_login_at is not None

    async def test_successful_login_blocked_while_locked(self, provisioning, employee_account):
        for _ in range(3):
            await provisioning.record_failed_login(employee_account.account_id)

        with pytest.raises(InvalidStateError):
            await provisioning.record_successful_login(employee_account.account_id)

    async def test_successful_login_blocked_when_suspended(self, provisioning, employee_account):
        await provisioning.update_status(employee_account.account_id, "SUSPENDED")

        with pytest.raises(InvalidStateError):
            await provisioning.record_successful_login(employee_account.account_id)


class TestEvents:
    async def test_events_newest_first_and_limited(self, session, provisioning, employee_account):
        base = datetime(2025, 1, 1, tzinfo=timezone.utc)
        for i, event_type in enumerate(["FIRST", "SECOND", "THIRD"]):
            session.add(
                AccountEvent(
                    account_id=employee_account.account_id,
                    event_type=event_type,
                    created_at=base + timedelta(minutes=i),
                )
            )
        await session.flush()

        events = await provisioning.list_events(employee_account.account_id)
        assert [e.event_type for e in events] == ["THIRD", "SECOND", "FIRST"]

        events = await provisioning.list_events(employee_account.account_id, limit=1)
        assert [e.event_type for e in events] == ["THIRD"]
