"""EngineService: workspace-backed command execution.

Each operation rebuilds the receiver and its history from the workspace,
runs exactly one Invoker operation, then persists the outcome (receiver
state, both stacks, a journal row) in a single transaction. Failed
operations only write the journal row: a failure never mutates state.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from histctl.domain.commands import Command
from histctl.domain.errors import InvalidPayload, MementoStoreError
from histctl.domain.receivers import receiver_kind
from histctl.engine.chain import (
    UNHANDLED,
    Handler,
    HandlerChain,
    OffloadHandler,
    PredicateHandler,
    ReceiverHandler,
)
from histctl.services._helpers import stack_depths
from histctl.services.invoker import Invoker
from histctl.services.result import ServiceResult
from histctl.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from collections.abc import Callable

    from histctl.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)


class EngineService:
    """Execute, undo and redo commands against a workspace's receiver."""

    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    @traced
    def execute(self, command_type: str, payload: dict[str, Any] | None = None) -> ServiceResult:
        """Create a command of *command_type* and run it."""
        try:
            command = Command(type=command_type, payload=payload or {})
        except ValidationError as exc:
            error = InvalidPayload(
                f"Malformed command: {exc.error_count()} error(s)",
                detail={"type": command_type},
            )
            return ServiceResult.failure("execute", error, data={"type": command_type})
        return self._run("execute", lambda invoker: invoker.execute(command))

    @traced
    def undo(self) -> ServiceResult:
        return self._run("undo", lambda invoker: invoker.undo())

    @traced
    def redo(self) -> ServiceResult:
        return self._run("redo", lambda invoker: invoker.redo())

    # ------------------------------------------------------------------
    # Read-only operations
    # ------------------------------------------------------------------

    @traced
    def history(self, *, log_limit: int = 0) -> ServiceResult:
        """Both stacks (oldest first) and, optionally, recent journal rows."""
        data: dict[str, Any] = self._workspace.load_history().to_dict()
        if log_limit > 0:
            data["log"] = self._workspace.read_log(limit=log_limit)
        return ServiceResult(ok=True, op="history", data=data)

    @traced
    def state(self) -> ServiceResult:
        """Current receiver state."""
        receiver = self._workspace.load_receiver()
        history = self._workspace.load_history()
        return ServiceResult(
            ok=True,
            op="state",
            data={
                "name": self._workspace.name,
                "kind": receiver_kind(receiver),
                "state": receiver.snapshot(),
                **stack_depths(history),
            },
        )

    @traced
    def types(self) -> ServiceResult:
        """Every registered command type."""
        items: list[dict[str, Any]] = []
        for command_type in self._workspace.registry:
            model = command_type.payload_model
            receiver_types = command_type.receiver_type
            if not isinstance(receiver_types, tuple):
                receiver_types = (receiver_types,)
            items.append(
                {
                    "name": command_type.name,
                    "receiver": ", ".join(t.__name__ for t in receiver_types),
                    "fields": list(model.model_fields) if model is not None else [],
                    "description": command_type.description,
                }
            )
        return ServiceResult(ok=True, op="types", data={"types": items, "count": len(items)})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_chain(self, executor: ThreadPoolExecutor | None) -> HandlerChain:
        """read-only guard (optional) -> receiver handler (optionally offloaded)."""
        config = self._workspace.settings.chain
        handlers: list[Handler] = []
        if config.read_only:
            handlers.append(
                PredicateHandler(lambda _request: True, lambda _request: UNHANDLED, name="read-only")
            )
        terminal: Handler = ReceiverHandler(self._workspace.registry)
        if executor is not None:
            terminal = OffloadHandler(terminal, executor)
        handlers.append(terminal)
        return HandlerChain.build(*handlers)

    def _run(self, op: str, operation: Callable[[Invoker], ServiceResult]) -> ServiceResult:
        workspace = self._workspace
        config = workspace.settings.chain

        receiver = workspace.load_receiver()
        history = workspace.load_history()
        executor = ThreadPoolExecutor(max_workers=config.max_workers) if config.offload else None
        try:
            invoker = Invoker(
                receiver,
                self._build_chain(executor),
                registry=workspace.registry,
                history=history,
                handler_timeout=config.handler_timeout,
                store=workspace.memento_store,
                event_bus=workspace.event_bus,
            )
            result = operation(invoker)
        finally:
            if executor is not None:
                executor.shutdown(wait=False, cancel_futures=True)

        try:
            with trace_span("persist"), workspace.transaction() as txn:
                if result.ok:
                    txn.save_receiver(workspace.name, invoker.receiver)
                    txn.save_history(workspace.name, invoker.history)
                txn.append_log(workspace.name, result)
        except SQLAlchemyError as exc:
            logger.error("Failed to persist %s outcome", op, exc_info=True)
            error = MementoStoreError(
                f"Failed to persist workspace state after {op}",
                detail={"exception": type(exc).__name__},
            )
            return ServiceResult.failure(op, error, data=result.data, warnings=result.warnings)
        return result
