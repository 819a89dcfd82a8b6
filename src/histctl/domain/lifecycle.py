"""Command lifecycle status model.

    submitted -> validated -> applied -> (undone <-> redone)*

plus the terminal states ``failed``, ``unhandled`` and ``cancelled``.
Status is always set by the invoker, never by the client.
"""

from __future__ import annotations

from enum import StrEnum


class CommandStatus(StrEnum):
    """Lifecycle status of a submitted command."""

    SUBMITTED = "submitted"
    VALIDATED = "validated"
    APPLIED = "applied"
    UNDONE = "undone"
    REDONE = "redone"
    FAILED = "failed"
    UNHANDLED = "unhandled"
    CANCELLED = "cancelled"


COMMAND_TRANSITIONS: dict[str, list[str]] = {
    "submitted": ["validated", "failed", "cancelled"],
    "validated": ["applied", "failed", "unhandled", "cancelled"],
    "applied": ["undone"],
    "undone": ["redone"],
    "redone": ["undone"],
    "failed": [],
    "unhandled": [],
    "cancelled": [],
}

# A cancel request is only honoured before the command is applied.
CANCELLABLE: frozenset[str] = frozenset({"submitted", "validated"})

# Statuses in which the command's effect is present on the receiver.
IN_EFFECT: frozenset[str] = frozenset({"applied", "redone"})


def is_valid_transition(
    current: str,
    target: str,
    transitions: dict[str, list[str]] = COMMAND_TRANSITIONS,
) -> bool:
    """Check if transitioning from *current* to *target* is allowed."""
    allowed = transitions.get(current, [])
    return target in allowed


def is_terminal(status: str) -> bool:
    """Return True when no further transition is possible from *status*."""
    return not COMMAND_TRANSITIONS.get(status, [])
