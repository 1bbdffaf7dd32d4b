"""SQLite backing for the tracker store (local mode and tests).

The tracker's matching rules are case-insensitive and are evaluated in
SQL with ``lower()``.  SQLite's built-in ``lower()`` only folds ASCII,
which would make ``Ärzte`` and ``ÄRZTE`` different objects locally while
PostgreSQL treats them as one.  Every connection opened here replaces
``lower()`` with a Unicode-aware version so both backends agree.

Other local-mode specifics:

* ``:memory:`` databases share a single connection (``StaticPool``) so
  every session of one engine sees the same tracked rows.
* File databases run in WAL mode so the poller can read while DDL writes.
* There is no search path; the table lives in the main database.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from tracker_engine.state.tables import Base

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def _unicode_lower(value: Any) -> Any:
    if isinstance(value, str):
        return value.lower()
    return value


def local_database_url(db_path: Path | str) -> str:
    """Return the ``sqlite+aiosqlite`` URL for *db_path* (or ``:memory:``)."""
    if str(db_path) in ("", MEMORY):
        return f"sqlite+aiosqlite:///{MEMORY}"
    return f"sqlite+aiosqlite:///{db_path}"


def get_local_engine(db_path: Path | str = ".tracker/state.db") -> AsyncEngine:
    """Create the async engine for a local tracker store.

    Parameters
    ----------
    db_path:
        Database file; parent directories are created.  ``:memory:`` gives
        an ephemeral store shared by every session of the returned engine.
    """
    in_memory = str(db_path) in ("", MEMORY)
    if not in_memory:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    url = local_database_url(db_path)

    engine_kwargs: dict[str, Any] = {"echo": False, "connect_args": {"check_same_thread": False}}
    if in_memory:
        engine_kwargs["poolclass"] = StaticPool
    engine = create_async_engine(url, **engine_kwargs)

    @event.listens_for(engine.sync_engine, "connect")
    def _prepare_connection(dbapi_conn: Any, _: object) -> None:
        dbapi_conn.create_function("lower", 1, _unicode_lower)
        if not in_memory:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    logger.info("Created local tracker engine: %s", url)
    return engine


async def create_local_tables(engine: AsyncEngine) -> list[str]:
    """Create the tracker tables if missing and return their names.

    Local mode has no Alembic step, so this runs on every startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    tables = sorted(Base.metadata.tables)
    logger.info("Local tracker tables ready: %s", ", ".join(tables))
    return tables
