"""SQLite database engine and schema via SQLAlchemy Core."""

from histctl.infrastructure.database.engine import (
    create_db_engine,
    init_database,
    init_memory_database,
)
from histctl.infrastructure.database.schema import (
    command_log,
    history_entries,
    mementos,
    metadata,
    receiver_state,
)

__all__ = [
    "command_log",
    "create_db_engine",
    "history_entries",
    "init_database",
    "init_memory_database",
    "mementos",
    "metadata",
    "receiver_state",
]
