"""Password hashing and role permissions."""

from __future__ import annotations

from enum import Enum

from passlib.context import CryptContext

from hr_engine.errors import PermissionDeniedError, ValidationError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def validate_password(password: str | None) -> str:
    if not password:
        raise ValidationError("Password is required", details={"field": "password"})
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"field": "password"},
        )
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes",
            details={"field": "password"},
        )
    return password


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


class Role(str, Enum):
    """Account roles."""

    SUPERUSER = "SUPERUSER"
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"


class Action(str, Enum):
    READ = "read"
    WRITE = "write"
    APPROVE = "approve"
    ADMIN = "admin"


class Entity(str, Enum):
    EMPLOYEE = "employee"
    LEAVE = "leave"
    TIMESHEET = "timesheet"
    ACCOUNT = "account"


_ALL = {Action.READ, Action.WRITE, Action.APPROVE, Action.ADMIN}

# Permission matrix: {role: {entity: allowed actions}}
PERMISSIONS: dict[Role, dict[Entity, set[Action]]] = {
    Role.SUPERUSER: {entity: set(_ALL) for entity in Entity},
    Role.ADMIN: {
        Entity.EMPLOYEE: set(_ALL),
        Entity.LEAVE: set(_ALL),
        Entity.TIMESHEET: set(_ALL),
        Entity.ACCOUNT: set(_ALL),
    },
    Role.EMPLOYEE: {
        Entity.EMPLOYEE: {Action.READ},
        Entity.LEAVE: {Action.READ, Action.WRITE},
        Entity.TIMESHEET: {Action.READ, Action.WRITE},
        Entity.ACCOUNT: set(),
    },
}


def can(role: str, action: str, entity: str) -> bool:
    """Check whether a role may perform an action on an entity."""
    try:
        return Action(action) in PERMISSIONS[Role(role)][Entity(entity)]
    except ValueError:
        return False


def require_permission(role: str, action: str, entity: str) -> None:
    """Raise PermissionDeniedError unless the role may perform the action."""
    if not can(role, action, entity):
        raise PermissionDeniedError(
            f"Role {role} may not {Action(action).value} {Entity(entity).value}",
        )
