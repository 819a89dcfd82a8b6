"""Pluggy hook specifications for histctl lifecycle events and setup extensions.

Five lifecycle events are dispatched after the invoker commits (or refuses)
an operation. One setup-time hook lets plugins contribute command types.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pluggy

if TYPE_CHECKING:
    from histctl.domain.commands import CommandType

hookspec = pluggy.HookspecMarker("histctl")
hookimpl = pluggy.HookimplMarker("histctl")


class HistctlHookSpec:
    """Hook specifications for the histctl plugin system."""

    @hookspec
    def post_execute(
        self,
        command_id: str,
        command_type: str,
        payload: dict[str, Any],
    ) -> None:
        """Called after a command is applied and pushed onto the undo stack."""

    @hookspec
    def post_undo(self, command_id: str, command_type: str) -> None:
        """Called after a command is undone."""

    @hookspec
    def post_redo(self, command_id: str, command_type: str) -> None:
        """Called after a command is re-executed by redo."""

    @hookspec
    def post_evict(self, command_ids: list[str]) -> None:
        """Called when history entries are dropped (capacity or redo discard)."""

    @hookspec
    def post_failure(
        self,
        command_id: str | None,
        command_type: str | None,
        code: str,
        message: str,
    ) -> None:
        """Called when an operation ends without being applied."""

    @hookspec
    def register_command_types(self) -> list[CommandType] | None:
        """Return extra command types to add to the registry."""
