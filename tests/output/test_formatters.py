"""Tests for output mode selection."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from histctl.output.formatters import OutputSettings, format_result
from histctl.services.result import ServiceError, ServiceResult

_EXECUTED = ServiceResult(
    ok=True,
    op="execute",
    data={"command_id": "abc-123", "type": "deposit", "status": "applied", "undo_depth": 1},
    warnings=["Reverted late completion of command xyz"],
)


class TestFormatResult:
    def test_json_mode(self) -> None:
        out = format_result(_EXECUTED, settings=OutputSettings(json_output=True))
        parsed = json.loads(out)
        assert parsed["ok"] is True
        assert parsed["data"]["command_id"] == "abc-123"
        assert parsed["warnings"] == ["Reverted late completion of command xyz"]

    def test_json_wins_over_quiet(self) -> None:
        out = format_result(_EXECUTED, settings=OutputSettings(json_output=True, quiet=True))
        assert json.loads(out)["op"] == "execute"

    def test_quiet_mode(self) -> None:
        assert format_result(_EXECUTED, settings=OutputSettings(quiet=True)) == "abc-123"

    def test_default_mode(self) -> None:
        out = format_result(_EXECUTED)
        assert out.startswith("OK  execute")
        assert "abc-123" in out

    def test_error_json(self) -> None:
        result = ServiceResult(
            ok=False, op="undo", error=ServiceError(code="EMPTY_HISTORY", message="Nothing to undo")
        )
        parsed = json.loads(format_result(result, settings=OutputSettings(json_output=True)))
        assert parsed["error"]["code"] == "EMPTY_HISTORY"


class TestOutputSettings:
    def test_frozen(self) -> None:
        with pytest.raises(ValidationError):
            OutputSettings().quiet = True  # type: ignore[misc]
