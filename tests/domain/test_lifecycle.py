"""Tests for the command lifecycle transition table."""

from __future__ import annotations

import pytest

from histctl.domain.lifecycle import (
    CANCELLABLE,
    COMMAND_TRANSITIONS,
    IN_EFFECT,
    CommandStatus,
    is_terminal,
    is_valid_transition,
)


class TestTransitions:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            ("submitted", "validated"),
            ("validated", "applied"),
            ("validated", "unhandled"),
            ("applied", "undone"),
            ("undone", "redone"),
            ("redone", "undone"),
        ],
    )
    def test_allowed(self, current: str, target: str) -> None:
        assert is_valid_transition(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            ("submitted", "applied"),
            ("applied", "cancelled"),
            ("applied", "redone"),
            ("failed", "validated"),
            ("unknown", "validated"),
        ],
    )
    def test_rejected(self, current: str, target: str) -> None:
        assert not is_valid_transition(current, target)

    def test_every_status_has_an_entry(self) -> None:
        assert set(COMMAND_TRANSITIONS) == {s.value for s in CommandStatus}

    def test_terminal_states(self) -> None:
        terminal = {s for s in CommandStatus if is_terminal(s)}
        assert terminal == {
            CommandStatus.FAILED,
            CommandStatus.UNHANDLED,
            CommandStatus.CANCELLED,
        }

    def test_cancellable_only_before_apply(self) -> None:
        assert CANCELLABLE == {"submitted", "validated"}
        assert not CANCELLABLE & IN_EFFECT
