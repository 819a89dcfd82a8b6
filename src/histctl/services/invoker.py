"""Invoker: executes commands through the handler chain and owns history.

Lifecycle per command::

    submitted -> validated -> applied -> (undone <-> redone)*
                          \\-> failed | unhandled | cancelled

Concurrency model: one writer at a time. ``execute``, ``undo`` and
``redo`` serialize on a single lock, so callers on several threads queue
up rather than interleave stack mutations. A second, short-held lock
guards status bookkeeping so :meth:`Invoker.cancel` works while a command
waits for the writer lock or for a pending handler.

A handler may return a ``concurrent.futures.Future`` instead of a
memento. The invoker waits for it (bounded by ``handler_timeout``) before
committing anything; a command is never *applied* until its asynchronous
tail has finished. Timed-out work that is already running cannot be
stopped, so it is recorded as abandoned: the next operation (or
:meth:`Invoker.drain`) waits for it under the writer lock and reverts its
effect before touching the receiver. Nothing else mutates the receiver
in between, so the memento it returns is still current.

INVARIANT: every outcome is returned as a ServiceResult. Only programming
errors (illegal lifecycle transitions) raise.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import CancelledError, Future
from typing import TYPE_CHECKING, Any

import structlog

from histctl.domain.errors import (
    CommandAlreadySubmitted,
    CommandCancelled,
    CommandError,
    EmptyHistory,
    EngineError,
    ErrorCode,
    HandlerFailed,
    HandlerTimeout,
    MementoStoreError,
)
from histctl.domain.lifecycle import CANCELLABLE, CommandStatus, is_valid_transition
from histctl.domain.memento import Memento
from histctl.engine.chain import UNHANDLED, Request
from histctl.engine.history import DEFAULT_CAPACITY, HistoryEntry, HistoryManager, PushOutcome
from histctl.services._helpers import stack_depths
from histctl.services.result import ServiceError, ServiceResult
from histctl.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from uuid import UUID

    from histctl.domain.commands import Command, CommandRegistry
    from histctl.engine.chain import HandlerChain
    from histctl.infrastructure.memento_store import MementoStore
    from histctl.plugins.event_bus import EventBus

logger = logging.getLogger(__name__)

DEFAULT_HANDLER_TIMEOUT = 5.0


class Invoker:
    """Executes commands against one receiver and manages undo/redo.

    Parameters:
        receiver: The domain object commands mutate.
        chain: Frozen handler chain every ``execute`` is dispatched through.
        registry: Command types used for validation, undo and redo.
        history: Existing history to continue from (e.g. loaded from disk).
        capacity: Undo depth when *history* is not given.
        handler_timeout: Seconds to wait for a pending handler result.
            ``None`` waits indefinitely.
        store: Optional memento store. Mementos are saved before commit and
            deleted when their entry leaves history.
        event_bus: Optional lifecycle event dispatch.
    """

    def __init__(
        self,
        receiver: Any,
        chain: HandlerChain,
        *,
        registry: CommandRegistry,
        history: HistoryManager | None = None,
        capacity: int = DEFAULT_CAPACITY,
        handler_timeout: float | None = DEFAULT_HANDLER_TIMEOUT,
        store: MementoStore | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._receiver = receiver
        self._chain = chain
        self._registry = registry
        self._history = history if history is not None else HistoryManager(capacity)
        self._timeout = handler_timeout
        self._store = store
        self._bus = event_bus

        self._lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._status: dict[UUID, CommandStatus] = {}
        self._cancel_requested: set[UUID] = set()
        self._pending: dict[UUID, Future[Any]] = {}
        self._abandoned: deque[tuple[Command, Future[Any]]] = deque()

        for entry in self._history.undo_stack:
            self._status[entry.command.id] = CommandStatus.APPLIED
        for entry in self._history.redo_stack:
            self._status[entry.command.id] = CommandStatus.UNDONE

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def receiver(self) -> Any:
        return self._receiver

    @property
    def history(self) -> HistoryManager:
        return self._history

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    def status(self, command_id: UUID) -> CommandStatus | None:
        """Lifecycle status of a command this invoker has seen."""
        with self._state_lock:
            return self._status.get(command_id)

    def snapshot(self) -> dict[str, Any]:
        """Stack contents (oldest first) for reporting."""
        with self._lock:
            return self._history.to_dict()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @traced
    def execute(self, command: Command) -> ServiceResult:
        """Run *command* through the chain and record it on success."""
        with self._state_lock:
            seen = self._status.get(command.id)
            if seen is None:
                self._status[command.id] = CommandStatus.SUBMITTED
        if seen is not None:
            exc = CommandAlreadySubmitted(
                f"Command {command.id} was already submitted ({seen})",
                detail={"command_id": str(command.id), "status": str(seen)},
            )
            return ServiceResult.failure("execute", exc, data=self._command_data(command, seen))

        with (
            self._lock,
            structlog.contextvars.bound_contextvars(
                command_id=str(command.id), command_type=command.type
            ),
        ):
            return self._execute_locked(command)

    @traced
    def undo(self) -> ServiceResult:
        """Revert the most recent applied command."""
        op = "undo"
        with self._lock:
            try:
                warnings = self._settle_abandoned()
            except HandlerTimeout as exc:
                return ServiceResult.failure(op, exc, data=stack_depths(self._history))
            try:
                entry = self._history.peek_undo()
            except EmptyHistory as exc:
                return ServiceResult.failure(
                    op, exc, data=stack_depths(self._history), warnings=warnings
                )

            command = entry.command
            try:
                with trace_span("revert"):
                    self._registry.undo(command, self._receiver, entry.memento)
            except Exception as exc:
                return self._operation_failed(op, command, exc, warnings)

            self._history.pop_undo()
            self._transition(command.id, CommandStatus.UNDONE)
            logger.info("Undid %s command %s", command.type, command.id)
            warnings.extend(
                self._dispatch_event(
                    "post_undo",
                    {"command_id": str(command.id), "command_type": command.type},
                )
            )
            return ServiceResult(
                ok=True,
                op=op,
                data={
                    **self._command_data(command, CommandStatus.UNDONE),
                    **stack_depths(self._history),
                },
                warnings=warnings,
            )

    @traced
    def redo(self) -> ServiceResult:
        """Re-execute the most recently undone command.

        The command runs again against the current receiver (it is not a
        replay of a stored state), producing a fresh memento.
        """
        op = "redo"
        with self._lock:
            try:
                warnings = self._settle_abandoned()
            except HandlerTimeout as exc:
                return ServiceResult.failure(op, exc, data=stack_depths(self._history))
            try:
                entry = self._history.peek_redo()
            except EmptyHistory as exc:
                return ServiceResult.failure(
                    op, exc, data=stack_depths(self._history), warnings=warnings
                )

            command = entry.command
            try:
                with trace_span("reexecute"):
                    memento = self._registry.execute(command, self._receiver)
            except Exception as exc:
                return self._operation_failed(op, command, exc, warnings)

            try:
                self._save_memento(memento)
            except MementoStoreError as exc:
                self._revert(command, memento, warnings)
                return self._operation_failed(op, command, exc, warnings)

            outcome = self._history.pop_redo(HistoryEntry(command=command, memento=memento))
            self._transition(command.id, CommandStatus.REDONE)
            self._forget(outcome, warnings)
            logger.info("Redid %s command %s", command.type, command.id)
            warnings.extend(
                self._dispatch_event(
                    "post_redo",
                    {"command_id": str(command.id), "command_type": command.type},
                )
            )
            return ServiceResult(
                ok=True,
                op=op,
                data={
                    **self._command_data(command, CommandStatus.REDONE),
                    "memento": memento.model_dump(mode="json"),
                    "evicted": len(outcome.evicted),
                    **stack_depths(self._history),
                },
                warnings=warnings,
            )

    def cancel(self, command_id: UUID) -> bool:
        """Request cancellation of a command that is not yet applied.

        Returns True when the request was accepted. Applied commands cannot
        be cancelled; use :meth:`undo` instead.
        """
        with self._state_lock:
            status = self._status.get(command_id)
            if status is None or status not in CANCELLABLE:
                return False
            self._cancel_requested.add(command_id)
            future = self._pending.get(command_id)

        if future is not None:
            future.cancel()
        logger.info("Cancellation requested for command %s", command_id)
        return True

    def drain(self) -> ServiceResult:
        """Wait for abandoned handler work and revert it now.

        Fails with ``HANDLER_TIMEOUT`` when that work is still running after
        another ``handler_timeout``; the remaining work stays recorded.
        """
        with self._lock:
            try:
                warnings = self._settle_abandoned()
            except HandlerTimeout as exc:
                return ServiceResult.failure(
                    "drain", exc, data={"pending": len(self._abandoned)}
                )
        return ServiceResult(
            ok=True,
            op="drain",
            data={"reverted": len(warnings)},
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Execute pipeline
    # ------------------------------------------------------------------

    def _execute_locked(self, command: Command) -> ServiceResult:
        op = "execute"
        try:
            warnings = self._settle_abandoned()
        except HandlerTimeout as exc:
            return self._reject(op, command, CommandStatus.FAILED, exc, [])

        if self._take_cancel(command.id):
            exc = CommandCancelled(
                f"Command {command.id} was cancelled before it ran",
                detail={"command_id": str(command.id)},
            )
            return self._reject(op, command, CommandStatus.CANCELLED, exc, warnings)

        try:
            with trace_span("validate"):
                self._registry.validate(command)
        except CommandError as exc:
            return self._reject(op, command, CommandStatus.FAILED, exc, warnings)
        self._transition(command.id, CommandStatus.VALIDATED)

        request = Request.for_command(command, self._receiver)
        try:
            with trace_span("dispatch") as span:
                outcome = self._chain.dispatch(request)
                if isinstance(outcome, Future):
                    if span is not None:
                        span.annotate("pending", True)
                    outcome = self._await(command, outcome)
        except CommandCancelled as exc:
            return self._reject(op, command, CommandStatus.CANCELLED, exc, warnings)
        except EngineError as exc:
            return self._reject(op, command, CommandStatus.FAILED, exc, warnings)
        except Exception as exc:
            logger.warning("Handler failed for command %s", command.id, exc_info=True)
            failure = HandlerFailed(
                f"Handler raised {type(exc).__name__}: {exc}",
                detail={"exception": type(exc).__name__},
            )
            return self._reject(op, command, CommandStatus.FAILED, failure, warnings)

        if outcome is UNHANDLED:
            return self._unhandled(op, command, warnings)

        if not isinstance(outcome, Memento):
            exc = HandlerFailed(
                f"Handler for {command.type!r} returned {type(outcome).__name__}, "
                "expected a memento",
                detail={"returned": type(outcome).__name__},
            )
            return self._reject(op, command, CommandStatus.FAILED, exc, warnings)

        memento = outcome
        if self._take_cancel(command.id):
            self._revert(command, memento, warnings)
            exc = CommandCancelled(
                f"Command {command.id} was cancelled before it was applied",
                detail={"command_id": str(command.id)},
            )
            return self._reject(op, command, CommandStatus.CANCELLED, exc, warnings)

        with trace_span("commit"):
            try:
                self._save_memento(memento)
            except MementoStoreError as exc:
                self._revert(command, memento, warnings)
                return self._reject(op, command, CommandStatus.FAILED, exc, warnings)

            push = self._history.push(HistoryEntry(command=command, memento=memento))
            self._transition(command.id, CommandStatus.APPLIED)
            self._forget(push, warnings)

        logger.info("Applied %s command %s", command.type, command.id)
        warnings.extend(
            self._dispatch_event(
                "post_execute",
                {
                    "command_id": str(command.id),
                    "command_type": command.type,
                    "payload": command.payload_dict(),
                },
            )
        )
        return ServiceResult(
            ok=True,
            op=op,
            data={
                **self._command_data(command, CommandStatus.APPLIED),
                "memento": memento.model_dump(mode="json"),
                "evicted": len(push.evicted),
                **stack_depths(self._history),
            },
            warnings=warnings,
        )

    def _await(self, command: Command, future: Future[Any]) -> Any:
        """Wait for a pending handler result within the configured timeout."""
        with self._state_lock:
            self._pending[command.id] = future
        try:
            return future.result(timeout=self._timeout)
        except CancelledError:
            msg = f"Command {command.id} was cancelled while its handler was pending"
            raise CommandCancelled(msg, detail={"command_id": str(command.id)}) from None
        except TimeoutError:
            if not future.cancel():
                logger.warning(
                    "Handler for command %s timed out while running; its effect will be reverted",
                    command.id,
                )
                self._abandoned.append((command, future))
            msg = f"Handler for {command.type!r} did not finish within {self._timeout}s"
            raise HandlerTimeout(
                msg,
                detail={"command_id": str(command.id), "timeout": self._timeout},
            ) from None
        finally:
            with self._state_lock:
                self._pending.pop(command.id, None)

    def _settle_abandoned(self) -> list[str]:
        """Wait for timed-out work still running, then revert it. Caller holds the lock.

        Raises:
            HandlerTimeout: If that work does not finish within ``handler_timeout``.
        """
        warnings: list[str] = []
        while self._abandoned:
            command, future = self._abandoned[0]
            try:
                outcome = future.result(timeout=self._timeout)
            except TimeoutError:
                msg = f"Abandoned handler for command {command.id} is still running"
                raise HandlerTimeout(
                    msg,
                    detail={"command_id": str(command.id), "timeout": self._timeout},
                ) from None
            except CancelledError:
                outcome = None
            except Exception as exc:
                logger.warning(
                    "Abandoned handler for command %s failed", command.id, exc_info=True
                )
                warnings.append(f"Abandoned handler for command {command.id} failed: {exc}")
                outcome = None
            self._abandoned.popleft()

            if isinstance(outcome, Memento):
                self._revert(command, outcome, warnings)
                warnings.append(f"Reverted late completion of command {command.id}")
        return warnings

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _transition(self, command_id: UUID, target: CommandStatus) -> None:
        with self._state_lock:
            current = self._status.get(command_id)
            if current is not None and not is_valid_transition(current, target):
                msg = f"Illegal command transition {current} -> {target} for {command_id}"
                raise RuntimeError(msg)
            self._status[command_id] = target

    def _take_cancel(self, command_id: UUID) -> bool:
        with self._state_lock:
            if command_id in self._cancel_requested:
                self._cancel_requested.discard(command_id)
                return True
            return False

    def _save_memento(self, memento: Memento) -> None:
        if self._store is not None:
            self._store.save(memento)

    def _revert(self, command: Command, memento: Memento, warnings: list[str]) -> None:
        """Best-effort undo of an effect that must not be committed."""
        try:
            self._registry.undo(command, self._receiver, memento)
        except Exception:
            logger.error("Failed to revert command %s", command.id, exc_info=True)
            warnings.append(f"Failed to revert command {command.id}")

    def _forget(self, outcome: PushOutcome, warnings: list[str]) -> None:
        """Destroy mementos of entries that just left history."""
        if outcome.evicted:
            logger.info(
                "%s: evicted %d oldest entr%s (capacity %d)",
                ErrorCode.HISTORY_CAPACITY_EXCEEDED,
                len(outcome.evicted),
                "y" if len(outcome.evicted) == 1 else "ies",
                self._history.capacity,
            )

        dropped = outcome.dropped
        if not dropped:
            return

        command_ids = [entry.command.id for entry in dropped]
        if self._store is not None:
            try:
                self._store.delete(command_ids)
            except MementoStoreError as exc:
                logger.warning("Could not delete dropped mementos: %s", exc.message)
                warnings.append(exc.message)
        warnings.extend(
            self._dispatch_event("post_evict", {"command_ids": [str(c) for c in command_ids]})
        )

    # ------------------------------------------------------------------
    # Result helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _command_data(command: Command, status: CommandStatus) -> dict[str, Any]:
        return {
            "command_id": str(command.id),
            "type": command.type,
            "status": str(status),
        }

    def _reject(
        self,
        op: str,
        command: Command,
        status: CommandStatus,
        exc: EngineError,
        warnings: list[str],
    ) -> ServiceResult:
        """Finish an execute that did not apply."""
        self._transition(command.id, status)
        logger.info("Command %s ended %s: %s", command.id, status, exc.message)
        warnings.extend(self._failure_event(command, str(exc.code), exc.message))
        return ServiceResult.failure(
            op,
            exc,
            data=self._command_data(command, status),
            warnings=warnings,
        )

    def _unhandled(self, op: str, command: Command, warnings: list[str]) -> ServiceResult:
        self._transition(command.id, CommandStatus.UNHANDLED)
        message = f"No handler accepted {command.type!r}"
        logger.info("Command %s unhandled", command.id)
        warnings.extend(self._failure_event(command, ErrorCode.UNHANDLED, message))
        return ServiceResult(
            ok=False,
            op=op,
            data=self._command_data(command, CommandStatus.UNHANDLED),
            warnings=warnings,
            error=ServiceError(code=ErrorCode.UNHANDLED, message=message),
        )

    def _operation_failed(
        self,
        op: str,
        command: Command,
        exc: Exception,
        warnings: list[str],
    ) -> ServiceResult:
        """Undo/redo failure: stacks and status stay as they were."""
        if not isinstance(exc, EngineError):
            logger.warning("%s failed for command %s", op, command.id, exc_info=True)
            exc = HandlerFailed(
                f"{op} raised {type(exc).__name__}: {exc}",
                detail={"exception": type(exc).__name__},
            )
        warnings.extend(self._failure_event(command, str(exc.code), exc.message))
        status = self.status(command.id) or CommandStatus.APPLIED
        return ServiceResult.failure(
            op,
            exc,
            data={**self._command_data(command, status), **stack_depths(self._history)},
            warnings=warnings,
        )

    def _failure_event(self, command: Command, code: str, message: str) -> list[str]:
        return self._dispatch_event(
            "post_failure",
            {
                "command_id": str(command.id),
                "command_type": command.type,
                "code": str(code),
                "message": message,
            },
        )

    def _dispatch_event(self, hook_name: str, payload: dict[str, Any]) -> list[str]:
        """Dispatch a lifecycle event. No-op without an event bus.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        if self._bus is None:
            return []
        try:
            return self._bus.dispatch(hook_name, payload)
        except Exception:
            logger.debug("Event dispatch failed for %s", hook_name, exc_info=True)
            return [f"Event dispatch failed for {hook_name}"]
