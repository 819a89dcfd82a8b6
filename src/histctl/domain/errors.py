"""Error taxonomy for command execution and history management.

Every exception carries a stable ``code`` so the service layer can turn it
into a :class:`~histctl.services.result.ServiceError` without inspecting
messages. Two codes have no exception class:

- ``UNHANDLED``: the chain ran out of handlers. A normal terminal state,
  signalled by the :data:`~histctl.engine.chain.UNHANDLED` sentinel.
- ``HISTORY_CAPACITY_EXCEEDED``: the oldest undo entry was evicted.
  Informational; logged, never surfaced as a failure.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, ClassVar


class ErrorCode(StrEnum):
    """Stable error codes reported in ``ServiceError.code``."""

    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    UNKNOWN_COMMAND_TYPE = "UNKNOWN_COMMAND_TYPE"
    UNHANDLED = "UNHANDLED"
    EMPTY_HISTORY = "EMPTY_HISTORY"
    HANDLER_TIMEOUT = "HANDLER_TIMEOUT"
    COMMAND_CANCELLED = "COMMAND_CANCELLED"
    ALREADY_SUBMITTED = "ALREADY_SUBMITTED"
    HANDLER_FAILED = "HANDLER_FAILED"
    MEMENTO_MISMATCH = "MEMENTO_MISMATCH"
    CHAIN_FROZEN = "CHAIN_FROZEN"
    STORE_FAILED = "STORE_FAILED"
    HISTORY_CAPACITY_EXCEEDED = "HISTORY_CAPACITY_EXCEEDED"


class EngineError(Exception):
    """Base class for all histctl errors."""

    code: ClassVar[ErrorCode] = ErrorCode.HANDLER_FAILED

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail: dict[str, Any] = detail or {}


# --- Command errors ---


class CommandError(EngineError):
    """A command could not be applied. Receiver state is untouched."""


class InvalidPayload(CommandError):
    """Payload failed validation before any mutation. Retry with corrected input."""

    code = ErrorCode.INVALID_PAYLOAD


class UnknownCommandType(CommandError):
    """No registry entry exists for the command's type."""

    code = ErrorCode.UNKNOWN_COMMAND_TYPE


class CommandAlreadySubmitted(CommandError):
    """The invoker has already seen this command instance."""

    code = ErrorCode.ALREADY_SUBMITTED


class HandlerTimeout(CommandError):
    """A pending handler result missed its deadline."""

    code = ErrorCode.HANDLER_TIMEOUT


class CommandCancelled(CommandError):
    """The command was cancelled before it was applied."""

    code = ErrorCode.COMMAND_CANCELLED


class HandlerFailed(CommandError):
    """A handler raised or produced something other than a memento."""

    code = ErrorCode.HANDLER_FAILED


class MementoMismatch(CommandError):
    """A memento was presented for a command that did not create it."""

    code = ErrorCode.MEMENTO_MISMATCH


# --- History errors ---


class HistoryError(EngineError):
    """Undo/redo bookkeeping errors."""


class EmptyHistory(HistoryError):
    """Undo or redo was requested with nothing on the relevant stack."""

    code = ErrorCode.EMPTY_HISTORY


# --- Setup / persistence errors ---


class ChainFrozen(EngineError):
    """A handler chain was modified after it was built."""

    code = ErrorCode.CHAIN_FROZEN


class MementoStoreError(EngineError):
    """A memento could not be persisted or loaded."""

    code = ErrorCode.STORE_FAILED
