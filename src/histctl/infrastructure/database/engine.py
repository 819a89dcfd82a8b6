"""Database engine setup for SQLite with WAL mode.

The workspace database lives at ``{root}/.histctl/histctl.db``.
Access goes through SQLAlchemy Core, not the ORM.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from histctl.infrastructure.database.schema import metadata

STATE_DIRNAME = ".histctl"
DB_FILENAME = "histctl.db"


def create_db_engine(db_path: Path | None) -> Engine:
    """Create a SQLite engine with WAL mode and foreign keys enabled.

    ``None`` gives an in-memory database (tests, throwaway invokers).
    """
    if db_path is None:
        engine = create_engine(
            "sqlite://",
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(f"sqlite:///{db_path}", echo=False)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        cursor = dbapi_conn.cursor()
        if db_path is not None:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def init_database(root: Path) -> Engine:
    """Initialize the workspace database at ``{root}/.histctl/histctl.db``.

    Creates the ``.histctl/`` directory (and its ``plugins/`` folder) and
    all tables from :data:`schema.metadata`.

    Idempotent: safe to call on an existing workspace.
    """
    state_dir = root / STATE_DIRNAME
    state_dir.mkdir(parents=True, exist_ok=True)
    (state_dir / "plugins").mkdir(exist_ok=True)

    engine = create_db_engine(state_dir / DB_FILENAME)
    metadata.create_all(engine)
    return engine


def init_memory_database() -> Engine:
    """In-memory database with all tables created. Shared across threads."""
    engine = create_db_engine(None)
    metadata.create_all(engine)
    return engine
