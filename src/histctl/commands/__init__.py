"""Subcommand modules for histctl.

register_commands() imports command modules lazily so ``histctl --help``
stays fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register command groups and standalone commands on the root group."""
    # --- Groups ---
    from histctl.commands.account import account
    from histctl.commands.text import text

    cli.add_command(account)
    cli.add_command(text)

    # --- Standalone commands ---
    from histctl.commands.exec_cmd import exec_cmd
    from histctl.commands.history import history, redo, undo
    from histctl.commands.state import state, types

    cli.add_command(exec_cmd)
    cli.add_command(undo)
    cli.add_command(redo)
    cli.add_command(history)
    cli.add_command(state)
    cli.add_command(types)
