"""Adapt a ServiceResult to the requested output mode.

- ``--json``: the full result as indented JSON (warnings included).
- ``--quiet``: one status line, or bare command ids for listings.
- default: Rich rendering per operation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

from histctl.output.renderers import render_quiet, render_result

if TYPE_CHECKING:
    from histctl.services.result import ServiceResult


class OutputSettings(BaseModel):
    """How results are shown, derived from the global CLI flags."""

    model_config = {"frozen": True}

    json_output: bool = False
    quiet: bool = False
    verbose: bool = False


def format_result(result: ServiceResult, *, settings: OutputSettings | None = None) -> str:
    """Format a ServiceResult for display."""
    settings = settings or OutputSettings()
    if settings.json_output:
        return result.model_dump_json(indent=2)
    if settings.quiet:
        return render_quiet(result)
    return render_result(result, verbose=settings.verbose)
