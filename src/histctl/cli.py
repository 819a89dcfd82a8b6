"""``histctl`` entry point.

The root group only resolves settings and hands an :class:`AppContext` to
the subcommands; the workspace itself is opened lazily by the first
command that needs it, and closed when the click context tears down.
"""

from __future__ import annotations

import click

from histctl import __version__
from histctl.commands import register_commands
from histctl.commands._base import HistGroup
from histctl.commands._context import AppContext
from histctl.config.settings import HistSettings

_EXAMPLES = """\
  histctl account deposit 100
  histctl undo
  histctl --json history --log 5
  histctl -c ./other/histctl.toml state"""


@click.group(cls=HistGroup, invoke_without_command=True, examples=_EXAMPLES)
@click.version_option(version=__version__, prog_name="histctl")
@click.option("--json", "json_output", is_flag=True, help="Print results as JSON.")
@click.option("-q", "--quiet", is_flag=True, help="Print only the status line or ids.")
@click.option("-v", "--verbose", is_flag=True, help="Show span timings and lifecycle logs.")
@click.option("--log-json", is_flag=True, help="Write logs to stderr as JSON lines.")
@click.option(
    "-c", "--config", "config_path", default=None, help="Use this histctl.toml instead of searching."
)
@click.option("--sync", is_flag=True, help="Dispatch plugin hooks inline, not on a worker pool.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    sync: bool,
) -> None:
    """histctl: run commands against a receiver with undo and redo."""
    app = AppContext(
        HistSettings.from_cli(
            config_path=config_path,
            json_output=json_output,
            quiet=quiet,
            verbose=verbose,
            log_json=log_json,
            sync=sync,
        )
    )
    ctx.obj = app
    ctx.call_on_close(app.close)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
