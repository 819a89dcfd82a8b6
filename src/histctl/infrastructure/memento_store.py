"""Memento persistence boundary.

Stores keep mementos as opaque JSON blobs (:meth:`Memento.to_blob`) keyed
by command id. The engine only requires that ``load(save(m)) == m``.

- :class:`InMemoryMementoStore`: blobs in a dict, for embedded use and tests.
- :class:`SqlMementoStore`: blobs in the ``mementos`` table of a workspace
  database.
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError

from histctl.domain.errors import MementoStoreError
from histctl.domain.memento import Memento
from histctl.infrastructure.database.schema import mementos

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from uuid import UUID

    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)


@runtime_checkable
class MementoStore(Protocol):
    """Where the invoker keeps mementos outside process memory."""

    def save(self, memento: Memento) -> None:
        """Persist *memento*, replacing any blob for the same command."""
        ...

    def load(self, command_id: UUID) -> Memento:
        """Return the memento for *command_id*. Raises ``KeyError`` if absent."""
        ...

    def delete(self, command_ids: Iterable[UUID]) -> int:
        """Destroy the mementos for *command_ids*. Returns how many existed."""
        ...

    def __contains__(self, command_id: object) -> bool: ...


class InMemoryMementoStore:
    """Serialized mementos held in a dict."""

    def __init__(self) -> None:
        self._blobs: dict[str, str] = {}
        self._lock = threading.Lock()

    def save(self, memento: Memento) -> None:
        blob = memento.to_blob()
        with self._lock:
            self._blobs[str(memento.command_id)] = blob

    def load(self, command_id: UUID) -> Memento:
        with self._lock:
            blob = self._blobs[str(command_id)]
        return Memento.from_blob(blob)

    def delete(self, command_ids: Iterable[UUID]) -> int:
        removed = 0
        with self._lock:
            for command_id in command_ids:
                if self._blobs.pop(str(command_id), None) is not None:
                    removed += 1
        return removed

    def __contains__(self, command_id: object) -> bool:
        return str(command_id) in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)


class SqlMementoStore:
    """Mementos in the ``mementos`` table.

    Each call runs in its own transaction. Database failures surface as
    :class:`MementoStoreError` so the invoker can refuse to commit.
    """

    def __init__(self, engine: Engine, *, clock: Callable[[], str] | None = None) -> None:
        self._engine = engine
        self._clock = clock or _now_iso

    def save(self, memento: Memento) -> None:
        key = str(memento.command_id)
        try:
            with self._engine.begin() as conn:
                conn.execute(delete(mementos).where(mementos.c.command_id == key))
                conn.execute(
                    insert(mementos).values(
                        command_id=key,
                        blob=memento.to_blob(),
                        created=self._clock(),
                    )
                )
        except SQLAlchemyError as exc:
            msg = f"Failed to save memento for {key}"
            raise MementoStoreError(msg, detail={"command_id": key}) from exc

    def load(self, command_id: UUID) -> Memento:
        key = str(command_id)
        try:
            with self._engine.connect() as conn:
                blob = conn.execute(
                    select(mementos.c.blob).where(mementos.c.command_id == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            msg = f"Failed to load memento for {key}"
            raise MementoStoreError(msg, detail={"command_id": key}) from exc
        if blob is None:
            raise KeyError(key)
        return Memento.from_blob(blob)

    def delete(self, command_ids: Iterable[UUID]) -> int:
        keys = [str(c) for c in command_ids]
        if not keys:
            return 0
        try:
            with self._engine.begin() as conn:
                result = conn.execute(delete(mementos).where(mementos.c.command_id.in_(keys)))
        except SQLAlchemyError as exc:
            msg = f"Failed to delete {len(keys)} memento(s)"
            raise MementoStoreError(msg, detail={"command_ids": keys}) from exc
        logger.debug("Deleted %d memento(s)", result.rowcount)
        return result.rowcount

    def __contains__(self, command_id: object) -> bool:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(mementos.c.command_id).where(mementos.c.command_id == str(command_id))
            ).first()
        return row is not None

    def __len__(self) -> int:
        with self._engine.connect() as conn:
            return len(conn.execute(select(mementos.c.command_id)).fetchall())


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()
