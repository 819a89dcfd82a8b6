"""Click classes for histctl commands.

Every command can carry canned invocations via ``examples=``. They are
kept out of ``--help`` and printed by an eager ``--examples`` flag, which
exits before the workspace is opened.
"""

from __future__ import annotations

from typing import Any

import click


class _ExamplesMixin(click.Command):
    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        if examples:
            self.params.append(
                click.Option(
                    ["--examples"],
                    is_flag=True,
                    expose_value=False,
                    is_eager=True,
                    callback=self._print_examples,
                    help="Show example invocations and exit.",
                )
            )

    def _print_examples(self, ctx: click.Context, _param: click.Parameter, value: bool) -> None:
        if not value or ctx.resilient_parsing:
            return
        click.echo(f"Examples for '{ctx.command_path}':\n")
        click.echo(self.examples)
        ctx.exit(0)


class HistCommand(_ExamplesMixin):
    """Leaf command (``undo``, ``exec`` ...) with optional ``examples=``."""


class HistGroup(_ExamplesMixin, click.Group):
    """Command group (``account``, ``text``) whose subcommands are HistCommands."""

    command_class = HistCommand
