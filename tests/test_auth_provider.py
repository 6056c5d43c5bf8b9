"""Tests for token acquisition and the single-flight prompt lock."""

from __future__ import annotations

import asyncio

import pytest

from approvers.auth.provider import Account, AuthState, AuthTokenProvider
from approvers.config import AuthSettings
from approvers.exceptions import AuthError, ConfigurationError

SCOPES = ["People.Read", "User.Read"]
EXISTING = Account(home_account_id="home-0", username="existing@x.com")


def _provider(client, client_id: str = "app-id"):
    built = []

    def factory(settings):
        built.append(settings)
        return client

    provider = AuthTokenProvider(AuthSettings(client_id=client_id), client_factory=factory)
    return provider, built


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_missing_client_id_is_fatal(self, identity_client_cls):
        provider, built = _provider(identity_client_cls(), client_id="")
        with pytest.raises(ConfigurationError, match="Client ID is required"):
            await provider.get_access_token(SCOPES)
        assert built == []
        assert provider.state() is AuthState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_client_built_lazily_once(self, identity_client_cls):
        client = identity_client_cls(accounts=[EXISTING])
        provider, built = _provider(client)
        assert provider.state() is AuthState.UNINITIALIZED
        await provider.get_access_token(SCOPES)
        await provider.get_access_token(SCOPES)
        assert len(built) == 1
        assert client.init_calls == 1
        assert provider.state() is AuthState.READY

    @pytest.mark.asyncio
    async def test_initialization_failure_rebuilds_next_time(self, identity_client_cls):
        client = identity_client_cls(accounts=[EXISTING], init_fails=True)
        provider, built = _provider(client)
        with pytest.raises(AuthError):
            await provider.get_access_token(SCOPES)
        client.init_fails = False
        assert await provider.get_access_token(SCOPES) == "silent-token"
        assert len(built) == 2


class TestTokenAcquisition:
    @pytest.mark.asyncio
    async def test_reuses_existing_account_and_silent_token(self, identity_client_cls):
        client = identity_client_cls(accounts=[EXISTING])
        provider, _ = _provider(client)
        token = await provider.get_access_token(SCOPES)
        assert token == "silent-token"
        assert client.login_calls == 0
        assert client.interactive_calls == 0
        assert provider.account == EXISTING
        assert provider.state(SCOPES) is AuthState.TOKEN_CACHED

    @pytest.mark.asyncio
    async def test_signs_in_before_first_silent_attempt(self, identity_client_cls):
        client = identity_client_cls()
        provider, _ = _provider(client)
        token = await provider.get_access_token(SCOPES)
        assert token == "silent-token"
        assert client.login_calls == 1
        assert client.active is not None
        assert provider.interactive_prompts == 1

    @pytest.mark.asyncio
    async def test_silent_failure_falls_back_to_interactive(self, identity_client_cls):
        client = identity_client_cls(accounts=[EXISTING], silent_ok=False)
        provider, _ = _provider(client)
        token = await provider.get_access_token(SCOPES)
        assert token == "interactive-token"
        assert client.interactive_calls == 1
        assert provider.state(SCOPES) is AuthState.TOKEN_CACHED

    @pytest.mark.asyncio
    async def test_interactive_failure_is_terminal_for_request(self, identity_client_cls):
        client = identity_client_cls(
            accounts=[EXISTING], silent_ok=False, interactive_fails=True
        )
        provider, _ = _provider(client)
        with pytest.raises(AuthError, match="Interactive sign-in failed"):
            await provider.get_access_token(SCOPES)
        assert provider.state(SCOPES) is AuthState.FAILED

    @pytest.mark.asyncio
    async def test_scope_order_does_not_matter(self, identity_client_cls):
        client = identity_client_cls(accounts=[EXISTING])
        provider, _ = _provider(client)
        await provider.get_access_token(["User.Read", "People.Read"])
        assert provider.state(["People.Read", "User.Read"]) is AuthState.TOKEN_CACHED


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_sign_in(self, identity_client_cls):
        client = identity_client_cls()
        provider, _ = _provider(client)
        tokens = await asyncio.gather(
            provider.get_access_token(SCOPES),
            provider.get_access_token(SCOPES),
            provider.get_access_token(SCOPES),
        )
        assert tokens == ["silent-token"] * 3
        assert client.login_calls == 1
        assert provider.interactive_prompts == 1

    @pytest.mark.asyncio
    async def test_concurrent_silent_failures_share_one_prompt(self, identity_client_cls):
        client = identity_client_cls(accounts=[EXISTING], silent_ok=False)
        provider, _ = _provider(client)
        tokens = await asyncio.gather(
            provider.get_access_token(SCOPES),
            provider.get_access_token(SCOPES),
        )
        assert client.interactive_calls == 1
        assert sorted(tokens) == ["interactive-token", "silent-token"]
