"""Base protocol and types for identity provider adapters.

The provisioning service and the HTTP auth dependency talk to the identity
provider only through this protocol; provider-specific errors are wrapped in
``IdentityProviderError``.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Protocol


class IdentityProviderError(Exception):
    """Raised by adapters when the provider call fails."""

    def __init__(self, operation: str, message: str = ""):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}" if message else f"{operation} failed")


class InvalidTokenError(IdentityProviderError):
    """Raised when a bearer token cannot be verified."""

    def __init__(self, message: str = "invalid or expired token"):
        super().__init__("verify_token", message)


@dataclass(frozen=True)
class InvitedIdentity:
    """Result of inviting a user at the provider."""

    identity_id: str
    email: str
    invited_at: datetime.datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of a bearer token."""

    identity_id: str
    email: str
    expires_at: datetime.datetime | None = None


class IdentityProvider(Protocol):
    """Protocol for identity/session provider adapters."""

    provider_name: str

    async def invite_user(
        self,
        email: str,
        *,
        redirect_to: str,
        metadata: dict[str, Any] | None = None,
    ) -> InvitedIdentity:
        """Create a pending identity and send an invitation email."""
        ...

    async def delete_user(self, identity_id: str) -> None:
        """Remove an identity (used to revoke an invitation)."""
        ...

    async def send_password_reset(self, email: str, *, redirect_to: str) -> None:
        """Send an out-of-band password reset email."""
        ...

    async def update_password(self, identity_id: str, password: str) -> None:
        """Set the identity's password directly (admin override)."""
        ...

    async def verify_token(self, token: str) -> TokenClaims:
        """Verify a bearer token, raising InvalidTokenError if it is not valid."""
        ...
