"""Shared test fixtures for approvers."""

from __future__ import annotations

import asyncio

import pytest

from approvers.auth.provider import Account, TokenResult
from approvers.config import (
    AuthSettings,
    DirectorySettings,
    RepeaterConfig,
    RowSettings,
)
from approvers.directory.client import Person
from approvers.exceptions import InteractionRequired, LookupFailure, SearchError
from approvers.mode import StaticMode


class FakeDirectory:
    """In-memory DirectoryClient that records calls.

    ``gates`` holds an asyncio.Event per search term; a search for that
    term blocks until the event is set.
    """

    def __init__(self) -> None:
        self.people: dict[str, Person] = {}
        self.results: dict[str, list[Person]] = {}
        self.fail_terms: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}
        self.search_calls: list[str] = []
        self.resolve_calls: list[str] = []
        self.search_started = asyncio.Event()

    def add_person(self, login: str, name: str) -> Person:
        person = Person(id=f"id-{login}", display_name=name, login=login, email=login)
        self.people[login] = person
        return person

    async def resolve(self, key: str) -> Person:
        self.resolve_calls.append(key)
        await asyncio.sleep(0)
        if key not in self.people:
            raise LookupFailure(f"User lookup failed: 404 Not Found ({key})", status_code=404)
        return self.people[key]

    async def search(self, term, endpoint=None, limit=None) -> list[Person]:
        self.search_calls.append(term)
        self.search_started.set()
        gate = self.gates.get(term)
        if gate is not None:
            await gate.wait()
        if term in self.fail_terms:
            raise SearchError("Directory search failed: 503 Service Unavailable", status_code=503)
        return list(self.results.get(term, []))


class FakeIdentityClient:
    """IdentityClient double with call counters and a shared token cache flag."""

    def __init__(
        self,
        *,
        accounts: list[Account] | None = None,
        silent_ok: bool = True,
        interactive_fails: bool = False,
        init_fails: bool = False,
    ) -> None:
        self.accounts = list(accounts or [])
        self.active: Account | None = None
        self.silent_ok = silent_ok
        self.interactive_fails = interactive_fails
        self.init_fails = init_fails
        self.init_calls = 0
        self.login_calls = 0
        self.silent_calls = 0
        self.interactive_calls = 0

    async def initialize(self) -> None:
        self.init_calls += 1
        if self.init_fails:
            raise RuntimeError("authority discovery failed")

    def get_active_account(self) -> Account | None:
        return self.active

    def get_all_accounts(self) -> list[Account]:
        return list(self.accounts)

    def set_active_account(self, account: Account) -> None:
        self.active = account

    async def login_interactive(self, scopes: list[str]) -> TokenResult:
        self.login_calls += 1
        await asyncio.sleep(0.01)
        account = Account(home_account_id="home-1", username="alice@x.com")
        self.accounts.append(account)
        return TokenResult(access_token="login-token", account=account)

    async def acquire_token_silent(self, scopes: list[str], account: Account) -> TokenResult:
        self.silent_calls += 1
        await asyncio.sleep(0)
        if not self.silent_ok:
            raise InteractionRequired("consent required")
        return TokenResult(access_token="silent-token", account=account)

    async def acquire_token_interactive(self, scopes: list[str], account: Account) -> TokenResult:
        self.interactive_calls += 1
        await asyncio.sleep(0.01)
        if self.interactive_fails:
            raise RuntimeError("user cancelled")
        self.silent_ok = True
        return TokenResult(access_token="interactive-token", account=account)


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def mode() -> StaticMode:
    return StaticMode(read_only=False)


@pytest.fixture
def config() -> RepeaterConfig:
    """Configuration with a near-zero debounce so tests stay fast."""
    return RepeaterConfig(
        auth=AuthSettings(client_id="00000000-test"),
        directory=DirectorySettings(debounce_seconds=0.01, min_chars=2, max_suggestions=8),
        rows=RowSettings(min_rows=1, max_rows=10),
    )


@pytest.fixture
def identity_client_cls() -> type[FakeIdentityClient]:
    return FakeIdentityClient
