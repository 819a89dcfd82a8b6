"""Bounded undo/redo stacks.

INVARIANT: pushing a newly executed command clears the redo stack.
Divergent timelines are never merged.

INVARIANT: the undo stack never holds more than ``capacity`` entries.
Overflow evicts the oldest entry; its memento becomes unreachable. This
caps memory at the cost of undo depth.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

from histctl.domain.errors import EmptyHistory

if TYPE_CHECKING:
    from collections.abc import Iterable

    from histctl.domain.commands import Command
    from histctl.domain.memento import Memento

DEFAULT_CAPACITY = 100


@dataclass(frozen=True)
class HistoryEntry:
    """A command paired with the memento needed to undo it."""

    command: Command
    memento: Memento

    def to_dict(self) -> dict[str, object]:
        return {
            "command_id": str(self.command.id),
            "type": self.command.type,
            "payload": self.command.payload_dict(),
        }


@dataclass(frozen=True)
class PushOutcome:
    """Entries that fell out of history as a side effect of a push."""

    evicted: tuple[HistoryEntry, ...] = ()
    discarded: tuple[HistoryEntry, ...] = ()

    @property
    def dropped(self) -> tuple[HistoryEntry, ...]:
        """Every entry whose memento is now unreachable."""
        return self.evicted + self.discarded


class HistoryManager:
    """Owns the undo and redo stacks. Not thread-safe; the invoker serializes access."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            msg = f"History capacity must be >= 1, got {capacity}"
            raise ValueError(msg)
        self._capacity = capacity
        self._undo: deque[HistoryEntry] = deque()
        self._redo: list[HistoryEntry] = []

    @classmethod
    def restore(
        cls,
        undo: Iterable[HistoryEntry],
        redo: Iterable[HistoryEntry],
        *,
        capacity: int = DEFAULT_CAPACITY,
    ) -> HistoryManager:
        """Rebuild a manager from persisted stacks (oldest first, top last).

        An undo stack longer than *capacity* is trimmed from the oldest end.
        """
        manager = cls(capacity)
        manager._undo.extend(undo)
        while len(manager._undo) > capacity:
            manager._undo.popleft()
        manager._redo.extend(redo)
        return manager

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def undo_stack(self) -> tuple[HistoryEntry, ...]:
        """Undo entries, oldest first."""
        return tuple(self._undo)

    @property
    def redo_stack(self) -> tuple[HistoryEntry, ...]:
        """Redo entries, oldest first (the next redo is last)."""
        return tuple(self._redo)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def peek_undo(self) -> HistoryEntry:
        if not self._undo:
            raise EmptyHistory("Nothing to undo", detail={"stack": "undo"})
        return self._undo[-1]

    def peek_redo(self) -> HistoryEntry:
        if not self._redo:
            raise EmptyHistory("Nothing to redo", detail={"stack": "redo"})
        return self._redo[-1]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def push(self, entry: HistoryEntry) -> PushOutcome:
        """Record a newly executed command. Clears the redo stack."""
        discarded = tuple(self._redo)
        self._redo.clear()
        self._undo.append(entry)
        return PushOutcome(evicted=self._evict(), discarded=discarded)

    def pop_undo(self) -> HistoryEntry:
        """Remove the top undo entry and place it on the redo stack."""
        entry = self.peek_undo()
        self._undo.pop()
        self._redo.append(entry)
        return entry

    def pop_redo(self, replacement: HistoryEntry | None = None) -> PushOutcome:
        """Move the top redo entry back onto the undo stack.

        *replacement* substitutes the entry pushed to the undo stack, which
        is how a redo records the fresh memento from re-execution.
        """
        entry = self.peek_redo()
        self._redo.pop()
        self._undo.append(replacement or entry)
        return PushOutcome(evicted=self._evict())

    def to_dict(self) -> dict[str, object]:
        """Both stacks, oldest first, plus depths and capacity."""
        return {
            "capacity": self._capacity,
            "undo": [e.to_dict() for e in self._undo],
            "redo": [e.to_dict() for e in self._redo],
            "undo_depth": len(self._undo),
            "redo_depth": len(self._redo),
        }

    def clear(self) -> tuple[HistoryEntry, ...]:
        """Drop both stacks, returning every entry removed."""
        dropped = (*self._undo, *self._redo)
        self._undo.clear()
        self._redo.clear()
        return dropped

    def _evict(self) -> tuple[HistoryEntry, ...]:
        evicted: list[HistoryEntry] = []
        while len(self._undo) > self._capacity:
            evicted.append(self._undo.popleft())
        return tuple(evicted)

    def __len__(self) -> int:
        return len(self._undo)
