"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO). Renderers are
dispatched by ``result.op`` in :func:`render_result`; unknown ops fall
through to a generic key-value renderer.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from histctl.output.console import create_console, get_output, style_for_status

if TYPE_CHECKING:
    from collections.abc import Callable

    from rich.console import Console

    from histctl.services.result import ServiceResult

    Renderer = Callable[..., None]


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich."""
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    data = result.data
    if result.op == "types":
        return "\n".join(item["name"] for item in data.get("types", []))
    if result.op == "history":
        return "\n".join(entry["command_id"] for entry in reversed(data.get("undo", [])))
    if "command_id" in data:
        return str(data["command_id"])
    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    label = Text("OK", style="hist.ok")
    op = Text(f"  {result.op}", style="hist.op")
    console.print(label, op, sep="", end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="hist.key")
    if key.endswith("_id"):
        v = Text(str(value), style="hist.id")
    elif key == "type":
        v = Text(str(value), style="hist.type")
    elif key == "status":
        v = Text(str(value), style=style_for_status(str(value)))
    elif isinstance(value, (dict, list)):
        v = Text(json.dumps(value, separators=(",", ":")))
    else:
        v = Text(str(value))
    console.print(k, v, sep="", end="")
    console.print()


def _depths(console: Console, data: dict[str, Any]) -> None:
    undo = data.get("undo_depth", 0)
    redo = data.get("redo_depth", 0)
    console.print(Text(f"  undo {undo} · redo {redo}", style="dim"))


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print the meta block, telemetry span tree included (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(console: Console, span_data: dict[str, Any], indent: int = 4) -> None:
    """Render a span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"

    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {name}"
    annotations = span_data.get("annotations") or {}
    if annotations:
        line += "  (" + ", ".join(f"{k}={v}" for k, v in annotations.items()) + ")"
    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _entry_table(entries: list[dict[str, Any]], *, title: str) -> Table:
    """Stack entries, top of stack first."""
    table = Table(title=title, show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Command ID", style="hist.id", no_wrap=True)
    table.add_column("Type", style="hist.type")
    table.add_column("Payload")
    for depth, entry in enumerate(reversed(entries), start=1):
        table.add_row(
            str(depth),
            str(entry.get("command_id", "")),
            str(entry.get("type", "")),
            json.dumps(entry.get("payload", {}), separators=(",", ":")),
        )
    return table


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="hist.error")
    op = Text(f"  {result.op}", style="hist.op")
    code = Text(f"  [{err.code}]" if err else "", style="hist.key")
    console.print(label, op, code, Text(" — "), msg, sep="")

    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")
    if verbose:
        _render_meta(console, result)


# ── Command renderers ─────────────────────────────────────────────────


def _render_command(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render execute/undo/redo results."""
    _status_line(console, result)
    d = result.data
    for key in ("command_id", "type", "status"):
        if key in d:
            _field(console, key, d[key])
    if d.get("evicted"):
        _field(console, "evicted", d["evicted"])
    if verbose and "memento" in d:
        _field(console, "memento", d["memento"].get("state"))
    _depths(console, d)
    if verbose:
        _render_meta(console, result)


def _render_history(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    undo = d.get("undo", [])
    redo = d.get("redo", [])

    if not undo and not redo:
        console.print("History is empty.")
    if undo:
        console.print(_entry_table(undo, title="Undo stack"))
    if redo:
        console.print(_entry_table(redo, title="Redo stack"))
    console.print(
        f"\n{len(undo)} undoable, {len(redo)} redoable (capacity {d.get('capacity', '?')})"
    )

    log = d.get("log") or []
    if log:
        table = Table(title="Journal", show_header=True, pad_edge=False, expand=False)
        table.add_column("Time", style="dim")
        table.add_column("Op", style="hist.op")
        table.add_column("Command ID", style="hist.id", no_wrap=True)
        table.add_column("Type", style="hist.type")
        table.add_column("Result")
        for row in log:
            outcome = Text("ok", style="hist.ok") if row.get("ok") else Text(
                str(row.get("error_code") or "error"), style="hist.error"
            )
            table.add_row(
                str(row.get("timestamp", "")),
                str(row.get("op", "")),
                str(row.get("command_id") or ""),
                str(row.get("type") or ""),
                outcome,
            )
        console.print()
        console.print(table)
    if verbose:
        _render_meta(console, result)


def _render_state(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    console.print(f"[bold]{d.get('name', '?')}[/bold] ({d.get('kind', '?')})")
    state = d.get("state")
    if isinstance(state, dict):
        for key, value in state.items():
            _field(console, key, value)
    else:
        _field(console, "state", state)
    _depths(console, d)
    if verbose:
        _render_meta(console, result)


def _render_types(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("types", [])
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Type", style="hist.type", no_wrap=True)
    table.add_column("Receiver")
    table.add_column("Fields")
    table.add_column("Description", style="dim")
    for item in items:
        table.add_row(
            str(item.get("name", "")),
            str(item.get("receiver", "")),
            ", ".join(item.get("fields", [])),
            str(item.get("description", "")),
        )
    console.print(table)
    console.print(f"\n{result.data.get('count', len(items))} command types")


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Status line plus every data field."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Renderer] = {
    "execute": _render_command,
    "undo": _render_command,
    "redo": _render_command,
    "history": _render_history,
    "state": _render_state,
    "types": _render_types,
}
