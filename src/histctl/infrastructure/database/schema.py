"""SQLAlchemy Core table definitions for the histctl workspace database.

- ``receiver_state``: the current snapshot of each named receiver.
- ``history_entries``: undo/redo stacks, one row per entry, ordered by
  ``position`` within each stack (0 = oldest).
- ``mementos``: opaque memento blobs keyed by command id.
- ``command_log``: append-only journal of every operation outcome.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

receiver_state = Table(
    "receiver_state",
    metadata,
    Column("name", Text, primary_key=True),
    Column("kind", Text, nullable=False),
    Column("state", Text, nullable=False),  # JSON
    Column("modified", Text, nullable=False),
)

history_entries = Table(
    "history_entries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("receiver", Text, nullable=False),
    Column("stack", Text, nullable=False),  # undo | redo
    Column("position", Integer, nullable=False),
    Column("command_id", Text, nullable=False),
    Column("command_type", Text, nullable=False),
    Column("payload", Text, nullable=False),  # JSON
    UniqueConstraint("receiver", "stack", "position"),
)

mementos = Table(
    "mementos",
    metadata,
    Column("command_id", Text, primary_key=True),
    Column("blob", Text, nullable=False),  # Memento.to_blob()
    Column("created", Text, nullable=False),
)

command_log = Table(
    "command_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("receiver", Text, nullable=False),
    Column("op", Text, nullable=False),  # execute | undo | redo
    Column("command_id", Text),
    Column("command_type", Text),
    Column("ok", Integer, nullable=False),
    Column("error_code", Text),
    Column("timestamp", Text, nullable=False),
)

Index("ix_history_receiver_stack", history_entries.c.receiver, history_entries.c.stack)
Index("ix_command_log_receiver", command_log.c.receiver)
