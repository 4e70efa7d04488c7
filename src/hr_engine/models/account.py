"""Account and account audit event models."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hr_engine.models.base import Base, JSONType, TimestampMixin, UpdatedAtMixin


class Account(Base, UpdatedAtMixin):
    """Login-capable identity, optionally linked to one employee.

    Status and security fields are written only by the provisioning service.
    """

    __tablename__ = "account"

    account_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    identity_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    company_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=True,
    )
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False, default="EMPLOYEE")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    account_status: Mapped[str | None] = mapped_column(String, nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String, nullable=True)
    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked_until: Mapped[datetime | None] = mapped_column(nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_password_change_at: Mapped[datetime | None] = mapped_column(nullable=True)
    password_reset_requested_at: Mapped[datetime | None] = mapped_column(nullable=True)
    password_reset_completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint("role IN ('ADMIN', 'EMPLOYEE', 'SUPERUSER')", name="account_role_check"),
        CheckConstraint(
            "account_status IS NULL OR account_status IN ("
            "'ACTIVE', 'PENDING_SETUP', 'PASSWORD_RESET_PENDING', "
            "'PASSWORD_RESET_COMPLETED', 'SUSPENDED', 'INACTIVE')",
            name="account_status_check",
        ),
        CheckConstraint("failed_login_attempts >= 0", name="account_failed_attempts_check"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def status(self) -> str:
        """Effective account status.

        The explicit ``account_status`` column wins when populated; otherwise
        the status is derived from ``is_active`` and the password timestamps.
        """
        # Import here to avoid circular imports
        from hr_engine.services.state_machine import resolve_account_status

        return resolve_account_status(self)


class AccountEvent(Base, TimestampMixin):
    """Append-only audit trail of provisioning actions on an account."""

    __tablename__ = "account_event"

    account_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("account.account_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    event_status: Mapped[str] = mapped_column(String, nullable=False, default="SUCCESS")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_account_id: Mapped[UUID | None] = mapped_column(nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "event_status IN ('SUCCESS', 'FAILURE')",
            name="account_event_status_check",
        ),
    )
