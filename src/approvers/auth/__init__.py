"""Credential acquisition for directory access."""

from approvers.auth.provider import (
    Account,
    AuthState,
    AuthTokenProvider,
    IdentityClient,
    TokenResult,
)

__all__ = [
    "Account",
    "AuthState",
    "AuthTokenProvider",
    "IdentityClient",
    "TokenResult",
]
