"""Command: execute any registered command type."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import click

from histctl.commands._base import HistCommand
from histctl.services._helpers import parse_assignments

if TYPE_CHECKING:
    from histctl.commands._context import AppContext


def _parse_payload(raw: str | None, assignments: tuple[str, ...]) -> dict[str, Any]:
    """Merge ``--payload`` JSON with ``--set`` pairs (pairs win)."""
    payload: dict[str, Any] = {}
    if raw:
        try:
            loaded = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise click.BadParameter(f"not valid JSON: {exc}", param_hint="--payload") from exc
        if not isinstance(loaded, dict):
            raise click.BadParameter("must be a JSON object", param_hint="--payload")
        payload.update(loaded)
    try:
        payload.update(parse_assignments(assignments))
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--set") from exc
    return payload


@click.command(
    "exec",
    cls=HistCommand,
    examples="""\
  histctl exec deposit --set amount=100
  histctl exec withdraw --payload '{"amount": 30}'
  histctl --json exec insert_text --set position=0 --set text=hello""",
)
@click.argument("command_type")
@click.option("--payload", "raw_payload", default=None, help="Payload as a JSON object.")
@click.option(
    "--set",
    "assignments",
    multiple=True,
    metavar="KEY=VALUE",
    help="Payload field (repeatable; integers are parsed).",
)
@click.pass_obj
def exec_cmd(
    app: AppContext,
    command_type: str,
    raw_payload: str | None,
    assignments: tuple[str, ...],
) -> None:
    """Execute a command of COMMAND_TYPE against the workspace receiver."""
    payload = _parse_payload(raw_payload, assignments)
    app.emit(app.engine.execute(command_type, payload))
