"""AppContext: shared Click context for all commands.

Created once by the root CLI group and passed to subcommands via
``@click.pass_obj``. Provides lazy Workspace initialization and
centralized result emission (stdout/stderr routing and exit codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from histctl.config.logging import configure_logging
from histctl.output.formatters import OutputSettings, format_result
from histctl.services.telemetry import enable_telemetry

if TYPE_CHECKING:
    from histctl.config.settings import HistSettings
    from histctl.infrastructure.workspace import Workspace
    from histctl.services.engine import EngineService
    from histctl.services.result import ServiceResult


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    The workspace is opened on first use so ``--help`` and ``--version``
    never touch the database.
    """

    def __init__(self, settings: HistSettings) -> None:
        self.settings = settings
        self._workspace: Workspace | None = None

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)
        if settings.verbose:
            enable_telemetry()

    @property
    def workspace(self) -> Workspace:
        """The workspace instance (created lazily on first access)."""
        if self._workspace is None:
            from histctl.infrastructure.workspace import Workspace

            self._workspace = Workspace(self.settings)
            self._workspace.init_event_bus(sync=self.settings.sync)
        return self._workspace

    @property
    def engine(self) -> EngineService:
        from histctl.services.engine import EngineService

        return EngineService(self.workspace)

    def close(self) -> None:
        """Release the workspace; late plugin failures go to stderr."""
        if self._workspace is None:
            return
        for warning in self._workspace.close():
            click.echo(f"WARNING: {warning}", err=True)
        self._workspace = None

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success: stdout. Warnings go to stderr so piped output stays clean.
        * Failure: stderr, exit code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)
