"""Configuration loader for the approvers repeater.

Loads from approvers.toml with sensible defaults when file is absent, or
from the host form's designer property bag. Configuration is loaded once
at startup and passed via dependency injection.
"""

from __future__ import annotations

import enum
import logging
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SCOPES: tuple[str, ...] = ("People.Read", "User.Read")
DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"
DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_REDIRECT_ORIGIN = "http://localhost"
MAX_SUGGESTIONS_CEILING = 25


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""


class DirectoryEndpoint(enum.Enum):
    """Which directory search the repeater queries."""

    PEOPLE = "me.people"  # ranked by relevance to the signed-in user
    USERS = "users"  # directory-wide filtered search

    @classmethod
    def parse(cls, value: object) -> DirectoryEndpoint:
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        if text in ("users", "directory", "directory-wide"):
            return cls.USERS
        if text in ("", "me.people", "people", "personal", "personal-relevance"):
            return cls.PEOPLE
        raise ConfigError(f"Unknown directory endpoint: {value!r}")


def parse_scopes(raw: object) -> tuple[str, ...]:
    """Split a comma-separated scope list, dropping blanks."""
    if isinstance(raw, (list, tuple)):
        items = [str(s) for s in raw]
    else:
        items = str(raw or "").split(",")
    return tuple(s.strip() for s in items if s.strip())


def clamp_limit(value: object, default: int = 8) -> int:
    """Clamp a suggestion limit into [1, 25]; falsy values use the default."""
    try:
        parsed = int(value) if value else default
    except (TypeError, ValueError):
        parsed = default
    return max(1, min(parsed, MAX_SUGGESTIONS_CEILING))


@dataclass(frozen=True)
class AuthSettings:
    client_id: str = ""
    tenant_id: str = "common"
    redirect_origin: str = ""
    scopes: tuple[str, ...] = DEFAULT_SCOPES

    @property
    def authority(self) -> str:
        return f"{DEFAULT_AUTHORITY_HOST}/{self.tenant_id.strip() or 'common'}"

    @property
    def redirect_uri(self) -> str:
        origin = self.redirect_origin.strip()
        if not origin:
            return DEFAULT_REDIRECT_ORIGIN
        return origin.rstrip("/")

    def __repr__(self) -> str:
        return (
            f"AuthSettings(client_id={self.client_id!r}, tenant_id={self.tenant_id!r}, "
            f"scopes={list(self.scopes)!r})"
        )


@dataclass(frozen=True)
class DirectorySettings:
    endpoint: DirectoryEndpoint = DirectoryEndpoint.PEOPLE
    base_url: str = DEFAULT_GRAPH_BASE_URL
    max_suggestions: int = 8
    min_chars: int = 2
    debounce_seconds: float = 0.2
    mail_domain_filter: str = ""  # e.g. "contoso.com"; users endpoint only
    timeout_seconds: float = 20.0

    @property
    def limit(self) -> int:
        return clamp_limit(self.max_suggestions)


@dataclass(frozen=True)
class RowSettings:
    min_rows: int = 1
    max_rows: int = 10


@dataclass(frozen=True)
class MirrorSettings:
    """Optional pretty-printed copy of the value in an external text field."""

    target_id: str = ""
    delay_seconds: float = 0.1


@dataclass(frozen=True)
class ModeSettings:
    force_editable: bool = False
    read_only: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class RepeaterConfig:
    """Top-level approvers configuration."""

    auth: AuthSettings = field(default_factory=AuthSettings)
    directory: DirectorySettings = field(default_factory=DirectorySettings)
    rows: RowSettings = field(default_factory=RowSettings)
    mirror: MirrorSettings = field(default_factory=MirrorSettings)
    mode: ModeSettings = field(default_factory=ModeSettings)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _as_int(value: object, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: object, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _row_settings(min_raw: object, max_raw: object) -> RowSettings:
    max_rows = max(1, _as_int(max_raw, 10))
    min_rows = max(0, _as_int(min_raw, 1))
    return RowSettings(min_rows=min(min_rows, max_rows), max_rows=max_rows)


def _property_endpoint(raw: object) -> DirectoryEndpoint:
    """Designer values other than the users variant mean personal relevance."""
    try:
        return DirectoryEndpoint.parse(raw)
    except ConfigError:
        logger.warning("Unknown graphEndpoint %r, using me.people", raw)
        return DirectoryEndpoint.PEOPLE


def config_from_properties(props: Mapping[str, Any]) -> RepeaterConfig:
    """Build config from the host form's designer property bag.

    Accepts the camelCase property names the form designer stores.
    """
    scopes = parse_scopes(props.get("scopes", props.get("scopesCsv", ""))) or DEFAULT_SCOPES
    endpoint = props.get("endpoint", props.get("graphEndpoint", ""))
    mirror_id = props.get("mirrorSinkId", props.get("jsonTargetId", ""))
    return RepeaterConfig(
        auth=AuthSettings(
            client_id=str(props.get("clientId", "") or "").strip(),
            tenant_id=str(props.get("tenantId", "") or "").strip() or "common",
            redirect_origin=str(props.get("redirectOrigin", "") or ""),
            scopes=scopes,
        ),
        directory=DirectorySettings(
            endpoint=_property_endpoint(endpoint),
            max_suggestions=clamp_limit(props.get("maxSuggestions"), 8),
            min_chars=max(0, _as_int(props.get("minChars"), 2)),
        ),
        rows=_row_settings(props.get("minRows"), props.get("maxRows")),
        mirror=MirrorSettings(target_id=str(mirror_id or "").strip()),
        mode=ModeSettings(force_editable=_as_bool(props.get("forceEditable"))),
    )


def load_config(path: Path | None = None) -> RepeaterConfig:
    """Load configuration from a TOML file.

    If path is None, searches for approvers.toml in current directory then
    ~/.approvers/. Returns default config if no file is found.
    """
    if path is None:
        candidates = [
            Path.cwd() / "approvers.toml",
            Path.home() / ".approvers" / "approvers.toml",
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break

    if path is None or not path.exists():
        return RepeaterConfig()

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    auth_data = raw.get("auth", {})
    auth = AuthSettings(
        client_id=str(auth_data.get("client_id", "")).strip(),
        tenant_id=str(auth_data.get("tenant_id", "common")).strip() or "common",
        redirect_origin=str(auth_data.get("redirect_origin", "")),
        scopes=parse_scopes(auth_data.get("scopes", "")) or DEFAULT_SCOPES,
    )

    dir_data = raw.get("directory", {})
    directory = DirectorySettings(
        endpoint=DirectoryEndpoint.parse(dir_data.get("endpoint", "me.people")),
        base_url=str(dir_data.get("base_url", DEFAULT_GRAPH_BASE_URL)).rstrip("/"),
        max_suggestions=clamp_limit(dir_data.get("max_suggestions"), 8),
        min_chars=max(0, _as_int(dir_data.get("min_chars"), 2)),
        debounce_seconds=max(0.0, _as_float(dir_data.get("debounce_seconds"), 0.2)),
        mail_domain_filter=str(dir_data.get("mail_domain_filter", "")).strip(),
        timeout_seconds=_as_float(dir_data.get("timeout_seconds"), 20.0),
    )

    rows_data = raw.get("rows", {})
    rows = _row_settings(rows_data.get("min_rows"), rows_data.get("max_rows"))

    mirror_data = raw.get("mirror", {})
    mirror = MirrorSettings(
        target_id=str(mirror_data.get("target_id", "")).strip(),
        delay_seconds=max(0.0, _as_float(mirror_data.get("delay_seconds"), 0.1)),
    )

    mode_data = raw.get("mode", {})
    mode = ModeSettings(
        force_editable=_as_bool(mode_data.get("force_editable")),
        read_only=_as_bool(mode_data.get("read_only")),
    )

    log_data = raw.get("logging", {})
    logging_cfg = LoggingConfig(level=str(log_data.get("level", "INFO")).upper())

    return RepeaterConfig(
        auth=auth,
        directory=directory,
        rows=rows,
        mirror=mirror,
        mode=mode,
        logging=logging_cfg,
    )
