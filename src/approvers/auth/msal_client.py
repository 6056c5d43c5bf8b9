"""``IdentityClient`` backed by the Microsoft Authentication Library."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

from approvers.auth.provider import Account, TokenResult
from approvers.config import AuthSettings
from approvers.exceptions import AuthError, InteractionRequired
from approvers.utils.concurrency import run_blocking

logger = logging.getLogger(__name__)


def _account_from_msal(raw: dict[str, Any]) -> Account:
    return Account(
        home_account_id=str(raw.get("home_account_id", "")),
        username=str(raw.get("username", "")),
    )


def _error_text(result: dict[str, Any]) -> str:
    return str(result.get("error_description") or result.get("error") or "unknown error")


class MsalIdentityClient:
    """Public-client MSAL session; the token cache lives in memory only.

    MSAL's Python API is blocking, so every call runs on a worker thread.
    """

    def __init__(self, settings: AuthSettings) -> None:
        self._settings = settings
        self._app: Any = None
        self._active: Account | None = None

    async def initialize(self) -> None:
        try:
            import msal  # type: ignore[import-not-found]
        except Exception as e:  # pragma: no cover - import path dependent
            raise AuthError(
                "Directory sign-in requires the `msal` package. "
                "Install it with the `msal` extra."
            ) from e
        self._app = await run_blocking(
            msal.PublicClientApplication,
            self._settings.client_id,
            authority=self._settings.authority,
        )

    def _require_app(self) -> Any:
        if self._app is None:
            raise AuthError("Identity client is not initialized.")
        return self._app

    def _raw_account(self, account: Account) -> dict[str, Any] | None:
        for raw in self._require_app().get_accounts():
            if raw.get("home_account_id") == account.home_account_id:
                return raw
        return None

    def get_active_account(self) -> Account | None:
        return self._active

    def get_all_accounts(self) -> list[Account]:
        return [_account_from_msal(raw) for raw in self._require_app().get_accounts()]

    def set_active_account(self, account: Account) -> None:
        self._active = account

    def _interactive_kwargs(self) -> dict[str, Any]:
        port = urlparse(self._settings.redirect_uri).port
        return {"port": port} if port else {}

    async def login_interactive(self, scopes: list[str]) -> TokenResult:
        app = self._require_app()
        result = await run_blocking(
            app.acquire_token_interactive, scopes, **self._interactive_kwargs()
        )
        return self._token_result(result, login=True)

    async def acquire_token_silent(self, scopes: list[str], account: Account) -> TokenResult:
        app = self._require_app()
        raw = self._raw_account(account)
        if raw is None:
            raise InteractionRequired("Account is not in the token cache.")
        result = await run_blocking(app.acquire_token_silent, scopes, account=raw)
        if not result:
            raise InteractionRequired("No cached token for the requested scopes.")
        if "access_token" not in result:
            raise InteractionRequired(_error_text(result))
        return TokenResult(
            access_token=result["access_token"],
            account=account,
            expires_in=result.get("expires_in"),
        )

    async def acquire_token_interactive(
        self, scopes: list[str], account: Account
    ) -> TokenResult:
        app = self._require_app()
        result = await run_blocking(
            app.acquire_token_interactive,
            scopes,
            login_hint=account.username or None,
            **self._interactive_kwargs(),
        )
        return self._token_result(result, login=False)

    def _token_result(self, result: dict[str, Any] | None, *, login: bool) -> TokenResult:
        if not result or "access_token" not in result:
            raise AuthError(_error_text(result or {}))
        account: Account | None = None
        claims = result.get("id_token_claims") or {}
        username = claims.get("preferred_username", "")
        accounts = self.get_all_accounts()
        for candidate in accounts:
            if username and candidate.username == username:
                account = candidate
                break
        if account is None and accounts:
            account = accounts[0]
        if login and account is None:
            logger.warning("Interactive sign-in returned no cached account")
        return TokenResult(
            access_token=result["access_token"],
            account=account,
            expires_in=result.get("expires_in"),
        )
