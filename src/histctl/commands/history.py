"""Commands: undo, redo, and history inspection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from histctl.commands._base import HistCommand

if TYPE_CHECKING:
    from histctl.commands._context import AppContext


@click.command(
    cls=HistCommand,
    examples="""\
  histctl undo
  histctl --json undo""",
)
@click.pass_obj
def undo(app: AppContext) -> None:
    """Revert the most recently applied command."""
    app.emit(app.engine.undo())


@click.command(
    cls=HistCommand,
    examples="""\
  histctl redo""",
)
@click.pass_obj
def redo(app: AppContext) -> None:
    """Re-execute the most recently undone command."""
    app.emit(app.engine.redo())


@click.command(
    cls=HistCommand,
    examples="""\
  histctl history
  histctl history --log 10
  histctl -q history""",
)
@click.option(
    "--log",
    "log_limit",
    type=click.IntRange(min=0),
    default=0,
    help="Also show the last N journal rows.",
)
@click.pass_obj
def history(app: AppContext, log_limit: int) -> None:
    """Show the undo and redo stacks."""
    app.emit(app.engine.history(log_limit=log_limit))
