"""Command group: text buffer shortcuts (insert, delete)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from histctl.commands._base import HistGroup

if TYPE_CHECKING:
    from histctl.commands._context import AppContext


@click.group(
    cls=HistGroup,
    examples="""\
  histctl text insert 0 "hello "
  histctl text delete 0 6""",
)
def text() -> None:
    """Edit a text buffer receiver."""


@text.command()
@click.argument("position", type=int)
@click.argument("content")
@click.pass_obj
def insert(app: AppContext, position: int, content: str) -> None:
    """Insert CONTENT at POSITION."""
    app.emit(app.engine.execute("insert_text", {"position": position, "text": content}))


@text.command()
@click.argument("position", type=int)
@click.argument("length", type=int)
@click.pass_obj
def delete(app: AppContext, position: int, length: int) -> None:
    """Delete LENGTH characters starting at POSITION."""
    app.emit(app.engine.execute("delete_text", {"position": position, "length": length}))
