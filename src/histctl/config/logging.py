"""Log setup for histctl.

All records go to stderr so stdout stays reserved for command results.
Engine modules log through plain ``logging.getLogger(__name__)``; a
structlog ``ProcessorFormatter`` renders them, so fields the invoker binds
with ``structlog.contextvars`` (``command_id``, ``command_type``) appear
on every line logged while a command runs, including from offload workers.

``--log-json`` switches the console renderer for one JSON object per line.
"""

from __future__ import annotations

import logging
import sys

import structlog

LOGGER_NAME = "histctl"

# Libraries whose INFO chatter would drown the engine's own events.
_QUIET_LOGGERS = ("sqlalchemy", "pluggy")


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_json: bool) -> structlog.types.Processor:
    if log_json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(
    *,
    verbose: bool = False,
    log_json: bool = False,
) -> None:
    """Route structlog and stdlib records through one stderr handler.

    Args:
        verbose: Lower the ``histctl`` logger to DEBUG so lifecycle events
            (applied, undone, evicted) are shown. Otherwise WARNING.
        log_json: Emit JSON lines instead of the console format.
    """
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_json),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.WARNING)

    logging.getLogger(LOGGER_NAME).setLevel(logging.DEBUG if verbose else logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
