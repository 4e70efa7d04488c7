"""Identity provider adapters."""

from hr_engine.identity.base import (
    IdentityProvider,
    IdentityProviderError,
    InvalidTokenError,
    InvitedIdentity,
    TokenClaims,
)
from hr_engine.identity.local import LocalIdentityProvider

__all__ = [
    "IdentityProvider",
    "IdentityProviderError",
    "InvalidTokenError",
    "InvitedIdentity",
    "TokenClaims",
    "LocalIdentityProvider",
]
