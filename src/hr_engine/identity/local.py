"""Local identity provider for development and testing.

Keeps invited identities in memory and signs bearer tokens with the
application secret. Replace with a hosted identity service adapter in
production.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from typing import Any

from jose import JWTError, jwt

from hr_engine.identity.base import (
    IdentityProviderError,
    InvalidTokenError,
    InvitedIdentity,
    TokenClaims,
)

logger = logging.getLogger(__name__)


class LocalIdentityProvider:
    """In-memory identity provider.

    ``fail_on`` names operations that should raise ``IdentityProviderError``,
    which lets tests exercise upstream failure and compensation paths.
    """

    provider_name = "local"

    def __init__(
        self,
        secret_key: str,
        *,
        algorithm: str = "HS256",
        token_ttl: datetime.timedelta = datetime.timedelta(minutes=60),
        fail_on: set[str] | None = None,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.token_ttl = token_ttl
        self.fail_on: set[str] = set(fail_on or ())
        # In-memory tracking for the local provider
        self.users: dict[str, dict[str, Any]] = {}
        self.sent_resets: list[str] = []

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise IdentityProviderError(operation, "simulated provider outage")

    async def invite_user(
        self,
        email: str,
        *,
        redirect_to: str,
        metadata: dict[str, Any] | None = None,
    ) -> InvitedIdentity:
        """Register a pending identity and pretend to email the invite link."""
        self._maybe_fail("invite_user")
        normalized = email.strip().lower()
        if any(user["email"] == normalized for user in self.users.values()):
            raise IdentityProviderError("invite_user", "email already registered")

        identity_id = str(uuid.uuid4())
        invited_at = datetime.datetime.now(datetime.timezone.utc)
        self.users[identity_id] = {
            "email": normalized,
            "password": None,
            "invited_at": invited_at,
            "redirect_to": redirect_to,
            "metadata": dict(metadata or {}),
        }
        logger.info("Local provider invited %s (identity %s)", normalized, identity_id)
        return InvitedIdentity(
            identity_id=identity_id,
            email=normalized,
            invited_at=invited_at,
            metadata=dict(metadata or {}),
        )

    async def delete_user(self, identity_id: str) -> None:
        self._maybe_fail("delete_user")
        if self.users.pop(identity_id, None) is None:
            raise IdentityProviderError("delete_user", "unknown identity")

    async def send_password_reset(self, email: str, *, redirect_to: str) -> None:
        self._maybe_fail("send_password_reset")
        self.sent_resets.append(email.strip().lower())

    async def update_password(self, identity_id: str, password: str) -> None:
        self._maybe_fail("update_password")
        user = self.users.get(identity_id)
        if user is None:
            raise IdentityProviderError("update_password", "unknown identity")
        # The local provider never keeps plaintext
        user["password"] = "set"

    def register(self, email: str, identity_id: str | None = None) -> str:
        """Register an already-active identity (seed data, tests)."""
        identity_id = identity_id or str(uuid.uuid4())
        self.users[identity_id] = {
            "email": email.strip().lower(),
            "password": "set",
            "invited_at": None,
            "redirect_to": None,
            "metadata": {},
        }
        return identity_id

    def issue_token(self, identity_id: str) -> str:
        """Issue a signed access token for a known identity."""
        user = self.users.get(identity_id)
        if user is None:
            raise IdentityProviderError("issue_token", "unknown identity")
        now = datetime.datetime.now(datetime.timezone.utc)
        payload = {
            "sub": identity_id,
            "email": user["email"],
            "iat": int(now.timestamp()),
            "exp": int((now + self.token_ttl).timestamp()),
            "jti": uuid.uuid4().hex,
            "token_type": "access",
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    async def verify_token(self, token: str) -> TokenClaims:
        self._maybe_fail("verify_token")
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            raise InvalidTokenError(str(e)) from e

        identity_id = payload.get("sub")
        if not identity_id or identity_id not in self.users:
            raise InvalidTokenError("unknown subject")
        exp = payload.get("exp")
        return TokenClaims(
            identity_id=identity_id,
            email=payload.get("email", ""),
            expires_at=(
                datetime.datetime.fromtimestamp(exp, tz=datetime.timezone.utc) if exp else None
            ),
        )
