"""Commands: receiver state and registered command types."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from histctl.commands._base import HistCommand

if TYPE_CHECKING:
    from histctl.commands._context import AppContext


@click.command(cls=HistCommand, examples="  histctl state\n  histctl --json state")
@click.pass_obj
def state(app: AppContext) -> None:
    """Show the current receiver state."""
    app.emit(app.engine.state())


@click.command(cls=HistCommand, examples="  histctl types\n  histctl -q types")
@click.pass_obj
def types(app: AppContext) -> None:
    """List registered command types, plugin types included."""
    app.emit(app.engine.types())
