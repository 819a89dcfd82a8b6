"""Memento snapshots and the Originator protocol.

A memento is an opaque snapshot of receiver state taken just before a
command mutates it. Only the receiver that produced the state knows how
to interpret it; everyone else treats it as a read-only blob.

INVARIANT: ``state`` is a JSON value, so the blob round trip is exact.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from pydantic import BaseModel, JsonValue


@runtime_checkable
class Originator(Protocol):
    """A receiver that can capture and restore its own state."""

    def snapshot(self) -> Any:
        """Return a JSON-compatible copy of the observable state."""
        ...

    def restore(self, state: Any) -> None:
        """Replace the observable state with a previous snapshot."""
        ...


class Memento(BaseModel):
    """Snapshot of receiver state owned by the command that created it."""

    model_config = {"frozen": True}

    command_id: UUID
    state: JsonValue

    def to_blob(self) -> str:
        """Serialize to a JSON string for external storage."""
        return self.model_dump_json()

    @classmethod
    def from_blob(cls, blob: str | bytes) -> Memento:
        """Rebuild a memento from :meth:`to_blob` output."""
        return cls.model_validate_json(blob)
