"""Rich Console factory and theme for histctl output.

Consoles render to a StringIO buffer so ``format_result() -> str`` stays a
pure function. In non-TTY environments (tests, pipes) Rich drops color
codes on its own.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

HIST_THEME = Theme(
    {
        "hist.ok": "bold green",
        "hist.error": "bold red",
        "hist.warning": "bold yellow",
        "hist.op": "bold cyan",
        "hist.key": "dim",
        "hist.id": "bold blue",
        "hist.type": "magenta",
        "hist.status.applied": "green",
        "hist.status.redone": "green",
        "hist.status.undone": "yellow",
        "hist.status.failed": "red",
        "hist.status.unhandled": "dim",
        "hist.status.cancelled": "dim",
    }
)


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes.
        width: Override terminal width (keeps test output stable).
    """
    return Console(
        file=StringIO(),
        theme=HIST_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_status(status: str) -> str:
    """Rich style name for a command status, or "" when unstyled."""
    name = f"hist.status.{status}"
    return name if name in HIST_THEME.styles else ""
