"""Tests for the text command group against a text receiver."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from histctl.cli import cli


@pytest.fixture
def text_workspace(workspace_root: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    (workspace_root / "histctl.toml").write_text(
        '[workspace]\nname = "doc"\nreceiver = "text"\n', encoding="utf-8"
    )
    monkeypatch.chdir(workspace_root)
    return workspace_root


def _text(runner: CliRunner) -> str:
    return json.loads(runner.invoke(cli, ["--json", "state"]).stdout)["data"]["state"]["text"]


@pytest.mark.usefixtures("text_workspace")
class TestTextCommands:
    def test_insert_delete_undo(self, cli_runner: CliRunner) -> None:
        assert cli_runner.invoke(cli, ["text", "insert", "0", "hello world"]).exit_code == 0
        assert cli_runner.invoke(cli, ["text", "delete", "0", "6"]).exit_code == 0
        assert _text(cli_runner) == "world"

        assert cli_runner.invoke(cli, ["undo"]).exit_code == 0
        assert _text(cli_runner) == "hello world"

    def test_insert_past_end(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["text", "insert", "3", "x"])
        assert result.exit_code == 1
        assert "past the end" in result.stderr

    def test_account_command_unhandled(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "account", "deposit", "5"])
        assert result.exit_code == 1
        parsed = json.loads(result.stderr)
        assert parsed["error"]["code"] == "UNHANDLED"
        assert parsed["data"]["status"] == "unhandled"

    def test_state_shows_kind(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["state"])
        assert result.exit_code == 0
        assert "doc (text)" in result.stdout
