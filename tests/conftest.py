"""Pytest fixtures for HR engine tests."""

from collections.abc import AsyncGenerator
from datetime import date, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hr_engine.config import LockoutPolicy
from hr_engine.identity import LocalIdentityProvider
from hr_engine.models import (
    Account,
    Base,
    Company,
    Employee,
    LeaveBalance,
    LeavePolicy,
    utcnow,
)
from hr_engine.services.leave_service import LeaveService
from hr_engine.services.provisioning_service import ProvisioningService
from hr_engine.services.timesheet_service import TimesheetService

# In-memory SQLite, one database per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_SECRET = "test-secret-key"


@pytest_asyncio.fixture
async def engine():
    """Create a fresh in-memory database with the full schema."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # SQLite needs explicit BEGIN for SAVEPOINT to behave
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def identity() -> LocalIdentityProvider:
    return LocalIdentityProvider(TEST_SECRET)


@pytest.fixture
def lockout_policy() -> LockoutPolicy:
    return LockoutPolicy(max_attempts=3, lockout_duration=timedelta(minutes=15))


# ============================================================================
# Reference data
# ============================================================================


@pytest_asyncio.fixture
async def company(session: AsyncSession) -> Company:
    company = Company(name="Acme Ltd")
    session.add(company)
    await session.flush()
    return company


@pytest_asyncio.fixture
async def other_company(session: AsyncSession) -> Company:
    company = Company(name="Globex Corp")
    session.add(company)
    await session.flush()
    return company


@pytest_asyncio.fixture
async def admin_account(
    session: AsyncSession, company: Company, identity: LocalIdentityProvider
) -> Account:
    identity_id = identity.register("admin@acme.test")
    account = Account(
        identity_id=identity_id,
        company_id=company.company_id,
        email="admin@acme.test",
        first_name="Ada",
        last_name="Admin",
        role="ADMIN",
        is_active=True,
        account_status="ACTIVE",
        last_login_at=utcnow(),
    )
    session.add(account)
    await session.flush()
    return account


@pytest_asyncio.fixture
async def employee(session: AsyncSession, company: Company) -> Employee:
    employee = Employee(
        company_id=company.company_id,
        first_name="Erin",
        last_name="Employee",
        email="erin@acme.test",
        position="Engineer",
        hire_date=date(2023, 3, 1),
    )
    session.add(employee)
    await session.flush()
    return employee


@pytest_asyncio.fixture
async def employee_account(
    session: AsyncSession, employee: Employee, identity: LocalIdentityProvider
) -> Account:
    """An ACTIVE EMPLOYEE account linked to ``employee``."""
    identity_id = identity.register(employee.email)
    account = Account(
        identity_id=identity_id,
        company_id=employee.company_id,
        email=employee.email,
        first_name=employee.first_name,
        last_name=employee.last_name,
        role="EMPLOYEE",
        is_active=True,
        account_status="ACTIVE",
    )
    session.add(account)
    await session.flush()
    employee.account_id = account.account_id
    await session.flush()
    return account


@pytest_asyncio.fixture
async def new_hire(session: AsyncSession, company: Company) -> Employee:
    """An employee without an account."""
    employee = Employee(
        company_id=company.company_id,
        first_name="Nina",
        last_name="Newhire",
        email="Nina.Newhire@acme.test",
        position="Analyst",
    )
    session.add(employee)
    await session.flush()
    return employee


@pytest_asyncio.fixture
async def annual_policy(session: AsyncSession, company: Company) -> LeavePolicy:
    policy = LeavePolicy(
        company_id=company.company_id,
        code="ANNUAL",
        name="Annual Leave",
        unit="DAYS",
        accrual_rule={"type": "fixed", "amount": 25},
        carry_over_max=Decimal("5"),
    )
    session.add(policy)
    await session.flush()
    return policy


@pytest_asyncio.fixture
async def balance(
    session: AsyncSession, employee: Employee, annual_policy: LeavePolicy
) -> LeaveBalance:
    """2025 balance: accrued 25, taken 5, closing 20."""
    balance = LeaveBalance(
        employee_id=employee.employee_id,
        leave_policy_id=annual_policy.leave_policy_id,
        period_start=date(2025, 1, 1),
        period_end=date(2025, 12, 31),
        opening=Decimal("0"),
        accrued=Decimal("25"),
        taken=Decimal("5"),
        adjusted=Decimal("0"),
        closing=Decimal("20"),
    )
    session.add(balance)
    await session.flush()
    return balance


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def leave_service(session: AsyncSession) -> LeaveService:
    return LeaveService(session, allow_overdraft=True)


@pytest.fixture
def timesheet_service(session: AsyncSession) -> TimesheetService:
    return TimesheetService(session)


@pytest.fixture
def provisioning(
    session: AsyncSession,
    identity: LocalIdentityProvider,
    lockout_policy: LockoutPolicy,
) -> ProvisioningService:
    return ProvisioningService(
        session,
        identity,
        lockout_policy=lockout_policy,
        invitation_redirect_url="http://test/auth/accept-invitation",
        password_reset_redirect_url="http://test/auth/reset-password",
    )
