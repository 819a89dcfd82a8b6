"""Workspace: persistent home of a receiver and its command history.

The Workspace is the single dependency injected into the engine service.
It owns the database engine, the memento store, the command registry and
(optionally) the plugin event bus. Between CLI invocations it keeps:

- the receiver's state (``receiver_state``),
- the undo/redo stacks (``history_entries``) with their mementos
  (``mementos``),
- a journal of every operation outcome (``command_log``).

Writes go through :meth:`Workspace.transaction`, which wraps
``engine.begin()``: receiver state, stacks and journal commit together or
not at all.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import delete, insert, select

from histctl.domain.commands import Command
from histctl.domain.receivers import builtin_registry, make_receiver, receiver_kind
from histctl.engine.history import HistoryEntry, HistoryManager
from histctl.infrastructure.database.engine import init_database
from histctl.infrastructure.database.schema import (
    command_log,
    history_entries,
    mementos,
    receiver_state,
)
from histctl.infrastructure.memento_store import SqlMementoStore
from histctl.services._helpers import now_iso

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from sqlalchemy import Connection
    from sqlalchemy.engine import Engine

    from histctl.config.settings import HistSettings
    from histctl.domain.commands import CommandRegistry
    from histctl.plugins.event_bus import EventBus
    from histctl.plugins.manager import PluginManager
    from histctl.services.result import ServiceResult

logger = logging.getLogger(__name__)

_STACKS = ("undo", "redo")


@dataclass
class WorkspaceTransaction:
    """Active transaction with the workspace database connection."""

    conn: Connection

    def save_receiver(self, name: str, receiver: Any) -> None:
        """Replace the stored state of receiver *name*."""
        self.conn.execute(delete(receiver_state).where(receiver_state.c.name == name))
        self.conn.execute(
            insert(receiver_state).values(
                name=name,
                kind=receiver_kind(receiver),
                state=json.dumps(receiver.snapshot()),
                modified=now_iso(),
            )
        )

    def save_history(self, name: str, history: HistoryManager) -> None:
        """Replace both stacks of receiver *name* and prune orphan mementos."""
        self.conn.execute(delete(history_entries).where(history_entries.c.receiver == name))
        rows: list[dict[str, Any]] = []
        for stack, entries in zip(_STACKS, (history.undo_stack, history.redo_stack), strict=True):
            for position, entry in enumerate(entries):
                rows.append(
                    {
                        "receiver": name,
                        "stack": stack,
                        "position": position,
                        "command_id": str(entry.command.id),
                        "command_type": entry.command.type,
                        "payload": json.dumps(entry.command.payload_dict()),
                    }
                )
        if rows:
            self.conn.execute(insert(history_entries), rows)

        referenced = select(history_entries.c.command_id)
        pruned = self.conn.execute(delete(mementos).where(mementos.c.command_id.not_in(referenced)))
        if pruned.rowcount:
            logger.debug("Pruned %d orphan memento(s)", pruned.rowcount)

    def append_log(self, name: str, result: ServiceResult) -> None:
        """Journal the outcome of one operation."""
        data = result.data or {}
        self.conn.execute(
            insert(command_log).values(
                receiver=name,
                op=result.op,
                command_id=data.get("command_id"),
                command_type=data.get("type"),
                ok=int(result.ok),
                error_code=result.code,
                timestamp=now_iso(),
            )
        )


class Workspace:
    """Repository for a histctl workspace directory.

    Constructed once at CLI startup from :class:`HistSettings` and stored
    in the click context. Pass *engine* to use an existing database (an
    in-memory one in tests) instead of ``{root}/.histctl/histctl.db``.
    """

    def __init__(self, settings: HistSettings, *, engine: Engine | None = None) -> None:
        self._settings = settings
        self._engine: Engine = engine if engine is not None else init_database(self.root)
        self._store = SqlMementoStore(self._engine)
        self._plugin_manager: PluginManager | None = None
        self._event_bus: EventBus | None = None
        self._registry: CommandRegistry | None = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def root(self) -> Path:
        return self._settings.workspace_root

    @property
    def name(self) -> str:
        """Name of the receiver this workspace operates on."""
        return self._settings.workspace.name

    @property
    def settings(self) -> HistSettings:
        return self._settings

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def memento_store(self) -> SqlMementoStore:
        return self._store

    @property
    def event_bus(self) -> EventBus | None:
        """The plugin event bus (None if not initialized)."""
        return self._event_bus

    @property
    def plugin_manager(self) -> PluginManager | None:
        return self._plugin_manager

    @property
    def registry(self) -> CommandRegistry:
        """Built-in command types plus any contributed by loaded plugins."""
        if self._registry is None:
            registry = builtin_registry()
            if self._plugin_manager is not None:
                added = self._plugin_manager.register_command_types(registry)
                if added:
                    logger.debug("Plugin command types: %s", ", ".join(added))
            self._registry = registry
        return self._registry

    def init_event_bus(self, *, sync: bool = False) -> None:
        """Discover plugins and wire up the event bus.

        Skipped entirely when ``[plugins] enabled = false``.
        """
        from histctl.plugins.event_bus import EventBus
        from histctl.plugins.manager import PluginManager

        if not self._settings.plugins.enabled:
            return

        pm = PluginManager()
        loaded = pm.discover_and_load(local_dir=self._settings.plugins_dir)
        if loaded:
            logger.debug("Loaded plugins: %s", ", ".join(loaded))
        self._plugin_manager = pm
        self._registry = None
        self._event_bus = EventBus(
            pm,
            sync=sync,
            max_workers=self._settings.chain.max_workers,
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_receiver(self) -> Any:
        """Rebuild the receiver from its stored state.

        A workspace with no stored state gets a fresh receiver of the
        configured kind.
        """
        with self._engine.connect() as conn:
            row = conn.execute(
                select(receiver_state.c.kind, receiver_state.c.state).where(
                    receiver_state.c.name == self.name
                )
            ).first()
        if row is None:
            return make_receiver(self._settings.workspace.receiver)
        if row.kind != self._settings.workspace.receiver:
            logger.warning(
                "Receiver %s is stored as %s; ignoring configured kind %s",
                self.name,
                row.kind,
                self._settings.workspace.receiver,
            )
        return make_receiver(row.kind, json.loads(row.state))

    def load_history(self) -> HistoryManager:
        """Rebuild the undo/redo stacks, mementos included.

        An entry whose memento is missing cannot be reverted, so it is
        dropped together with every entry beneath it on the same stack.
        """
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(history_entries)
                .where(history_entries.c.receiver == self.name)
                .order_by(history_entries.c.stack, history_entries.c.position)
            ).fetchall()

        stacks: dict[str, list[HistoryEntry]] = {stack: [] for stack in _STACKS}
        for row in rows:
            command = Command(
                id=UUID(row.command_id),
                type=row.command_type,
                payload=json.loads(row.payload),
            )
            try:
                memento = self._store.load(command.id)
            except KeyError:
                logger.warning(
                    "Memento for %s is missing; dropping it and older %s entries",
                    command.id,
                    row.stack,
                )
                stacks[row.stack].clear()
                continue
            stacks[row.stack].append(HistoryEntry(command=command, memento=memento))

        return HistoryManager.restore(
            stacks["undo"],
            stacks["redo"],
            capacity=self._settings.history.capacity,
        )

    def read_log(self, *, limit: int = 20) -> list[dict[str, Any]]:
        """Most recent journal rows for this receiver, newest first."""
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(command_log)
                .where(command_log.c.receiver == self.name)
                .order_by(command_log.c.id.desc())
                .limit(limit)
            ).fetchall()
        return [
            {
                "op": row.op,
                "command_id": row.command_id,
                "type": row.command_type,
                "ok": bool(row.ok),
                "error_code": row.error_code,
                "timestamp": row.timestamp,
            }
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[WorkspaceTransaction]:
        """Commit everything written in the block, or nothing.

        Usage::

            with workspace.transaction() as txn:
                txn.save_receiver(workspace.name, receiver)
                txn.save_history(workspace.name, history)
        """
        with self._engine.begin() as conn:
            yield WorkspaceTransaction(conn=conn)

    def close(self) -> list[str]:
        """Flush pending plugin events and release the database.

        Returns warnings from plugin hooks that failed asynchronously.
        """
        warnings: list[str] = []
        if self._event_bus is not None:
            warnings = self._event_bus.shutdown()
            self._event_bus = None
        self._engine.dispose()
        return warnings
