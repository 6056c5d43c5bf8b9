"""Access-token acquisition with silent-then-interactive fallback.

One ``AuthTokenProvider`` is shared by every row of a repeater. It owns
the identity client and the signed-in account, and guarantees that at
most one interactive prompt (sign-in or consent) is open at a time.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from approvers.config import AuthSettings
from approvers.exceptions import AuthError, ConfigurationError

logger = logging.getLogger(__name__)


class AuthState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    SILENT_ATTEMPT = "silent_attempt"
    INTERACTIVE_REQUIRED = "interactive_required"
    INTERACTIVE_PROMPT = "interactive_prompt"
    TOKEN_CACHED = "token_cached"
    FAILED = "failed"


@dataclass(frozen=True)
class Account:
    home_account_id: str
    username: str = ""


@dataclass(frozen=True)
class TokenResult:
    access_token: str
    account: Account | None = None
    expires_in: int | None = None


class IdentityClient(Protocol):
    """The slice of an identity-provider SDK the provider relies on.

    ``acquire_token_silent`` raises (typically ``InteractionRequired``)
    when no cached or refreshable token is available.
    """

    async def initialize(self) -> None: ...

    def get_active_account(self) -> Account | None: ...

    def get_all_accounts(self) -> list[Account]: ...

    def set_active_account(self, account: Account) -> None: ...

    async def login_interactive(self, scopes: list[str]) -> TokenResult: ...

    async def acquire_token_silent(self, scopes: list[str], account: Account) -> TokenResult: ...

    async def acquire_token_interactive(
        self, scopes: list[str], account: Account
    ) -> TokenResult: ...


ClientFactory = Callable[[AuthSettings], IdentityClient]


def _default_client_factory(settings: AuthSettings) -> IdentityClient:
    from approvers.auth.msal_client import MsalIdentityClient

    return MsalIdentityClient(settings)


def scope_key(scopes: Iterable[str]) -> tuple[str, ...]:
    return tuple(sorted({s.strip() for s in scopes if s and s.strip()}))


class AuthTokenProvider:
    """Lazily builds the identity client and hands out bearer tokens.

    Usage:
        provider = AuthTokenProvider(config.auth)
        token = await provider.get_access_token(config.auth.scopes)
    """

    def __init__(
        self,
        settings: AuthSettings,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory or _default_client_factory
        self._client: IdentityClient | None = None
        self._account: Account | None = None
        self._states: dict[tuple[str, ...], AuthState] = {}
        self._init_lock = asyncio.Lock()
        # Single-flight: every interactive prompt happens under this lock.
        self._interactive_lock = asyncio.Lock()
        self._interactive_prompts = 0

    @property
    def account(self) -> Account | None:
        return self._account

    @property
    def interactive_prompts(self) -> int:
        """How many interactive prompts this session has opened."""
        return self._interactive_prompts

    def state(self, scopes: Iterable[str] | None = None) -> AuthState:
        default = AuthState.UNINITIALIZED if self._client is None else AuthState.READY
        if scopes is None:
            return default
        return self._states.get(scope_key(scopes), default)

    def _set_state(self, key: tuple[str, ...], state: AuthState) -> None:
        self._states[key] = state

    async def ensure_client(self) -> IdentityClient:
        if self._client is not None:
            return self._client
        if not self._settings.client_id:
            raise ConfigurationError("Client ID is required.")
        async with self._init_lock:
            if self._client is not None:
                return self._client
            client = self._client_factory(self._settings)
            try:
                await client.initialize()
            except Exception as e:
                # Leave the session empty so the next request rebuilds it.
                logger.error("Identity client initialization failed: %s", e)
                raise AuthError(f"Sign-in is unavailable: {e}") from e
            self._client = client
            logger.debug("Identity client ready for authority %s", self._settings.authority)
            return client

    async def ensure_account(self, scopes: list[str]) -> Account:
        """Reuse the active account, or sign in interactively exactly once."""
        client = await self.ensure_client()
        account = self._existing_account(client)
        if account is not None:
            return account
        async with self._interactive_lock:
            account = self._existing_account(client)
            if account is not None:
                return account
            logger.info("No active account, starting interactive sign-in")
            self._interactive_prompts += 1
            try:
                result = await client.login_interactive(scopes)
            except Exception as e:
                raise AuthError(f"Sign-in failed: {e}") from e
            if result.account is None:
                raise AuthError("Sign-in did not return an account.")
            self._account = result.account
            client.set_active_account(result.account)
            logger.info("Signed in as %s", result.account.username or result.account.home_account_id)
            return result.account

    def _existing_account(self, client: IdentityClient) -> Account | None:
        if self._account is not None:
            return self._account
        account = client.get_active_account()
        if account is None:
            accounts = client.get_all_accounts()
            account = accounts[0] if accounts else None
        if account is not None:
            self._account = account
        return account

    async def get_access_token(self, scopes: Iterable[str]) -> str:
        scope_list = list(scope_key(scopes))
        key = tuple(scope_list)
        client = await self.ensure_client()
        self._states.setdefault(key, AuthState.READY)
        account = await self.ensure_account(scope_list)

        self._set_state(key, AuthState.SILENT_ATTEMPT)
        try:
            result = await client.acquire_token_silent(scope_list, account)
        except Exception as e:
            logger.info("Silent token acquisition failed (%s), falling back to interactive", e)
            self._set_state(key, AuthState.INTERACTIVE_REQUIRED)
            result = await self._acquire_interactive(client, scope_list, account)

        self._set_state(key, AuthState.TOKEN_CACHED)
        return result.access_token

    async def _acquire_interactive(
        self,
        client: IdentityClient,
        scopes: list[str],
        account: Account,
    ) -> TokenResult:
        key = tuple(scopes)
        async with self._interactive_lock:
            # Another caller may have completed a prompt while we waited.
            try:
                return await client.acquire_token_silent(scopes, account)
            except Exception as e:
                logger.debug("Silent retry under prompt lock failed: %s", e)
            self._set_state(key, AuthState.INTERACTIVE_PROMPT)
            self._interactive_prompts += 1
            try:
                return await client.acquire_token_interactive(scopes, account)
            except Exception as e:
                self._set_state(key, AuthState.FAILED)
                raise AuthError(f"Interactive sign-in failed: {e}") from e
