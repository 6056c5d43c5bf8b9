"""Tests for configuration loading."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from approvers.config import (
    AuthSettings,
    ConfigError,
    DirectoryEndpoint,
    RepeaterConfig,
    clamp_limit,
    config_from_properties,
    load_config,
    parse_scopes,
)


class TestDefaultConfig:
    def test_defaults(self):
        config = RepeaterConfig()
        assert config.auth.client_id == ""
        assert config.auth.tenant_id == "common"
        assert config.auth.scopes == ("People.Read", "User.Read")
        assert config.directory.endpoint is DirectoryEndpoint.PEOPLE
        assert config.directory.max_suggestions == 8
        assert config.directory.min_chars == 2
        assert config.directory.debounce_seconds == 0.2
        assert config.rows.min_rows == 1
        assert config.rows.max_rows == 10
        assert config.mirror.target_id == ""
        assert config.mode.force_editable is False

    def test_authority_and_redirect(self):
        auth = AuthSettings(tenant_id="contoso.onmicrosoft.com", redirect_origin=" https://forms.test/ ")
        assert auth.authority == "https://login.microsoftonline.com/contoso.onmicrosoft.com"
        assert auth.redirect_uri == "https://forms.test"
        assert AuthSettings().redirect_uri == "http://localhost"


class TestHelpers:
    def test_parse_scopes(self):
        assert parse_scopes(" People.Read , ,User.Read,") == ("People.Read", "User.Read")
        assert parse_scopes(["a", " b "]) == ("a", "b")
        assert parse_scopes("") == ()

    def test_clamp_limit(self):
        assert clamp_limit(100) == 25
        assert clamp_limit(-3) == 1
        assert clamp_limit(0) == 8
        assert clamp_limit(None) == 8
        assert clamp_limit("12") == 12
        assert clamp_limit("lots") == 8

    def test_endpoint_parse(self):
        assert DirectoryEndpoint.parse("users") is DirectoryEndpoint.USERS
        assert DirectoryEndpoint.parse("me.people") is DirectoryEndpoint.PEOPLE
        assert DirectoryEndpoint.parse("") is DirectoryEndpoint.PEOPLE
        with pytest.raises(ConfigError):
            DirectoryEndpoint.parse("groups")


class TestConfigFromProperties:
    def test_designer_property_names(self):
        config = config_from_properties({
            "clientId": " abc ",
            "tenantId": "",
            "graphEndpoint": "users",
            "scopesCsv": "User.Read.All",
            "maxSuggestions": 40,
            "minChars": "3",
            "minRows": 2,
            "maxRows": 4,
            "jsonTargetId": "approversJson",
            "forceEditable": "true",
        })
        assert config.auth.client_id == "abc"
        assert config.auth.tenant_id == "common"
        assert config.auth.scopes == ("User.Read.All",)
        assert config.directory.endpoint is DirectoryEndpoint.USERS
        assert config.directory.max_suggestions == 25
        assert config.directory.min_chars == 3
        assert config.rows.min_rows == 2
        assert config.rows.max_rows == 4
        assert config.mirror.target_id == "approversJson"
        assert config.mode.force_editable is True

    def test_unknown_designer_endpoint_falls_back_to_people(self, caplog):
        with caplog.at_level(logging.WARNING, logger="approvers.config"):
            config = config_from_properties({"graphEndpoint": "groups"})
        assert config.directory.endpoint is DirectoryEndpoint.PEOPLE
        assert "Unknown graphEndpoint" in caplog.text

    def test_bad_numbers_fall_back(self):
        config = config_from_properties({"minRows": "x", "maxRows": None, "minChars": "?"})
        assert config.rows.min_rows == 1
        assert config.rows.max_rows == 10
        assert config.directory.min_chars == 2

    def test_min_rows_capped_at_max_rows(self):
        config = config_from_properties({"minRows": 12, "maxRows": 3})
        assert config.rows.min_rows == 3
        assert config.rows.max_rows == 3


class TestLoadConfig:
    def test_load_missing_file_returns_defaults(self):
        config = load_config(Path("/nonexistent/approvers.toml"))
        assert config == RepeaterConfig()

    def test_load_valid_toml(self, tmp_path: Path):
        toml_file = tmp_path / "approvers.toml"
        toml_file.write_text("""\
[auth]
client_id = "11111111-2222"
tenant_id = "contoso"
scopes = "User.Read.All, People.Read"

[directory]
endpoint = "users"
max_suggestions = 5
min_chars = 3
debounce_seconds = 0.5
mail_domain_filter = "contoso.com"

[rows]
min_rows = 2
max_rows = 5

[mirror]
target_id = "approversJson"

[mode]
read_only = true

[logging]
level = "debug"
""")
        config = load_config(toml_file)
        assert config.auth.client_id == "11111111-2222"
        assert config.auth.scopes == ("User.Read.All", "People.Read")
        assert config.directory.endpoint is DirectoryEndpoint.USERS
        assert config.directory.limit == 5
        assert config.directory.debounce_seconds == 0.5
        assert config.directory.mail_domain_filter == "contoso.com"
        assert config.rows.min_rows == 2
        assert config.rows.max_rows == 5
        assert config.mirror.target_id == "approversJson"
        assert config.mode.read_only is True
        assert config.logging.level == "DEBUG"

    def test_invalid_toml_raises(self, tmp_path: Path):
        toml_file = tmp_path / "approvers.toml"
        toml_file.write_text("[auth\nclient_id = ")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(toml_file)
