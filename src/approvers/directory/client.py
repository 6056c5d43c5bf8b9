"""Directory client: resolve identities by key and search by free text.

``GraphDirectoryClient`` talks to Microsoft Graph over httpx. Both search
variants return people in the order the service ranks them; nothing is
re-sorted locally.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from approvers.config import (
    DEFAULT_GRAPH_BASE_URL,
    DirectoryEndpoint,
    DirectorySettings,
    clamp_limit,
)
from approvers.exceptions import ApproversError, LookupFailure, SearchError
from approvers.mode import ModeController
from approvers.utils.latency import timed_block

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Person:
    """A resolved directory identity. ``login`` is what gets persisted."""

    id: str
    display_name: str
    login: str
    email: str | None = None

    @classmethod
    def from_key(cls, key: str) -> Person:
        """Placeholder for a stored key whose details could not be loaded."""
        return cls(id=key, display_name=key, login=key, email=key)

    @classmethod
    def from_graph(cls, data: Mapping[str, Any]) -> Person:
        upn = str(data.get("userPrincipalName") or "").strip()
        mail = str(data.get("mail") or "").strip()
        if not mail:
            scored = data.get("scoredEmailAddresses") or []
            if scored and isinstance(scored[0], Mapping):
                mail = str(scored[0].get("address") or "").strip()
        person_id = str(data.get("id") or "")
        return cls(
            id=person_id,
            display_name=str(data.get("displayName") or ""),
            email=mail or upn or None,
            login=upn or mail or person_id,
        )


class TokenSource(Protocol):
    async def get_access_token(self, scopes: list[str] | tuple[str, ...]) -> str: ...


class DirectoryClient(Protocol):
    async def resolve(self, key: str) -> Person: ...

    async def search(
        self,
        term: str,
        endpoint: DirectoryEndpoint | None = None,
        limit: int | None = None,
    ) -> list[Person]: ...


class GraphDirectoryClient:
    """Microsoft Graph ``/users`` and ``/me/people`` adapter."""

    def __init__(
        self,
        tokens: TokenSource,
        mode: ModeController,
        *,
        scopes: tuple[str, ...],
        settings: DirectorySettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._tokens = tokens
        self._mode = mode
        self._scopes = scopes
        self._settings = settings or DirectorySettings()
        self._base_url = (self._settings.base_url or DEFAULT_GRAPH_BASE_URL).rstrip("/")
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout_seconds)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _headers(self, *, eventual: bool) -> dict[str, str]:
        token = await self._tokens.get_access_token(self._scopes)
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        if eventual:
            headers["ConsistencyLevel"] = "eventual"
        return headers

    async def resolve(self, key: str) -> Person:
        url = f"{self._base_url}/users/{quote(key, safe='')}"
        headers = await self._headers(eventual=False)
        client = await self._get_client()
        try:
            with timed_block(logger, event="directory_resolve"):
                r = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise LookupFailure(f"User lookup failed: {e}") from e
        if r.status_code >= 400:
            logger.warning("User lookup for %s failed: %s", key, r.status_code)
            raise LookupFailure(
                f"User lookup failed: {r.status_code} {r.reason_phrase}",
                status_code=r.status_code,
            )
        return Person.from_graph(_json_object(r, LookupFailure))

    async def search(
        self,
        term: str,
        endpoint: DirectoryEndpoint | None = None,
        limit: int | None = None,
    ) -> list[Person]:
        if self._mode.is_read_only():
            logger.debug("Read-only, skipping directory search")
            return []
        endpoint = endpoint or self._settings.endpoint
        top = clamp_limit(limit or self._settings.max_suggestions)
        if endpoint is DirectoryEndpoint.USERS:
            path = "/users"
            params = self._users_params(term, top)
        else:
            path = "/me/people"
            params = {"$search": f'"{term}"', "$top": str(top)}

        headers = await self._headers(eventual=True)
        client = await self._get_client()
        try:
            with timed_block(logger, event="directory_search", fields={"endpoint": endpoint.value}):
                r = await client.get(f"{self._base_url}{path}", params=params, headers=headers)
        except httpx.HTTPError as e:
            raise SearchError(f"Directory search failed: {e}") from e
        if r.status_code >= 400:
            logger.warning("Directory search %s failed: %s", path, r.status_code)
            raise SearchError(
                f"Directory search failed: {r.status_code} {r.reason_phrase}",
                status_code=r.status_code,
            )
        payload = _json_object(r, SearchError)
        items = payload.get("value") or []
        return [Person.from_graph(item) for item in items if isinstance(item, Mapping)]

    def _users_params(self, term: str, top: int) -> dict[str, str]:
        params = {
            "$search": f'"displayName:{term}"',
            "$orderby": "displayName",
            "$top": str(top),
        }
        domain = self._settings.mail_domain_filter.strip().lstrip("@")
        if domain:
            quoted = domain.replace("'", "''")
            params["$filter"] = f"endsWith(mail,'{quoted}')"
            params["$count"] = "true"
        return params


def _json_object(response: httpx.Response, error: type[ApproversError]) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as e:
        raise error("Directory returned invalid JSON.") from e
    if not isinstance(payload, dict):
        raise error("Directory returned an unexpected payload.")
    return payload
