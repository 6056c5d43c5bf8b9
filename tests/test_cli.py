"""Tests for the command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from approvers.__main__ import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "approvers.toml"
    path.write_text(
        '[rows]\nmin_rows = 2\nmax_rows = 5\n\n[mirror]\ntarget_id = "approversJson"\n'
    )
    return path


class TestNormalize:
    def test_renumbers_and_backfills(self, runner, config_file):
        result = runner.invoke(
            cli,
            ["--config", str(config_file), "normalize", '[{"order":7,"approver":" a@x.com "}]'],
        )
        assert result.exit_code == 0, result.output
        assert '[{"order":1,"approver":"a@x.com"},{"order":2,"approver":""}]' in result.output

    def test_read_only_keeps_rows_as_stored(self, runner, config_file):
        result = runner.invoke(
            cli, ["--config", str(config_file), "normalize", "--read-only", "[]"]
        )
        assert result.exit_code == 0, result.output
        assert result.output.strip().splitlines()[-1] == "[]"

    def test_invalid_value_becomes_minimum_rows(self, runner, config_file):
        result = runner.invoke(cli, ["--config", str(config_file), "normalize", "oops"])
        assert result.exit_code == 0, result.output
        assert '[{"order":1,"approver":""},{"order":2,"approver":""}]' in result.output


class TestMirror:
    def test_writes_pretty_mirror_file(self, runner, config_file, tmp_path):
        target = tmp_path / "mirror"
        result = runner.invoke(
            cli,
            [
                "--config", str(config_file),
                "mirror", '[{"order":1,"approver":"a@x.com"}]',
                "--target-dir", str(target),
            ],
        )
        assert result.exit_code == 0, result.output
        written = json.loads((target / "approversJson.json").read_text())
        assert written == [
            {"order": 1, "approver": "a@x.com"},
            {"order": 2, "approver": ""},
        ]
        assert "Wrote" in result.output

    def test_rejects_bad_target_id(self, runner, config_file, tmp_path):
        result = runner.invoke(
            cli,
            [
                "--config", str(config_file),
                "mirror", "[]",
                "--target-dir", str(tmp_path),
                "--target-id", "../escape",
            ],
        )
        assert result.exit_code == 1
        assert "Invalid mirror target id" in result.output


class TestConfigErrors:
    def test_invalid_toml_exits(self, runner, tmp_path):
        bad = tmp_path / "approvers.toml"
        bad.write_text("[rows\nmin_rows = ")
        result = runner.invoke(cli, ["--config", str(bad), "normalize", "[]"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_unknown_endpoint_exits(self, runner, tmp_path):
        bad = tmp_path / "approvers.toml"
        bad.write_text('[directory]\nendpoint = "groups"\n')
        result = runner.invoke(cli, ["--config", str(bad), "normalize", "[]"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestSearch:
    def test_missing_client_id_reports_failure(self, runner, tmp_path):
        empty = tmp_path / "approvers.toml"
        empty.write_text("")
        result = runner.invoke(cli, ["--config", str(empty), "search", "alice"])
        assert result.exit_code == 1
        assert "Search failed: Client ID is required." in result.output
