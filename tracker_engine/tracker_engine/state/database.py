"""Async SQLAlchemy engine and session factory for the tracker store.

The backend follows the configured state store:

* ``postgres`` -- a pooled ``asyncpg`` engine; the tracked table lives in
  the tracker schema, which sessions put first on the search path.
* ``local``    -- an ``aiosqlite`` file (see :mod:`.sqlite_adapter`).

:func:`get_engine` also dispatches on the URL scheme so a SQLite URL given
as ``database_url`` works without switching the store type.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tracker_engine.config import Settings, StateStoreType
from tracker_engine.state.sqlite_adapter import MEMORY, get_local_engine

logger = logging.getLogger(__name__)

# Unquoted PostgreSQL identifier: letter or underscore, then word characters, max 63.
_SCHEMA_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

# async_sessionmaker per engine, keyed by engine identity.
_session_factories: dict[int, async_sessionmaker[AsyncSession]] = {}


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Create the async engine for *database_url*.

    Parameters
    ----------
    database_url:
        ``postgresql+asyncpg://`` or ``sqlite+aiosqlite://`` URL.
    pool_size, max_overflow:
        Connection pool bounds for PostgreSQL; ignored for SQLite.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        return get_local_engine(url.database or MEMORY)

    engine = create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
        connect_args={
            "server_settings": {
                "application_name": "tracker_engine",
                # A tick must not queue behind long-running DDL.
                "lock_timeout": "10000",
            }
        },
    )
    logger.info(
        "Created tracker engine for %s (pool_size=%d max_overflow=%d)",
        url.render_as_string(hide_password=True),
        pool_size,
        max_overflow,
    )
    return engine


def engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create the engine for the configured state store."""
    if settings.state_store_type is StateStoreType.LOCAL:
        return get_local_engine(settings.local_db_path)
    return get_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return the (cached) session factory bound to *engine*."""
    factory = _session_factories.get(id(engine))
    if factory is None:
        factory = async_sessionmaker(engine, expire_on_commit=False)
        _session_factories[id(engine)] = factory
    return factory


def _dialect_name(session: AsyncSession) -> str:
    bind = session.get_bind()
    dialect = getattr(bind, "dialect", None)
    if dialect is not None:
        return str(getattr(dialect, "name", ""))
    return str(getattr(bind, "url", ""))


async def set_tracker_search_path(session: AsyncSession, tracker_schema: str) -> None:
    """Put the tracker's schema first on the transaction's search path.

    The ``tracked_objects`` table is declared without a schema so the same
    ORM works on SQLite.  On PostgreSQL it lives in a dedicated namespace,
    which must therefore be resolvable for every statement the repository
    issues.  ``public`` stays on the path after it.  SQLite has no search
    path and this is a no-op there.

    Raises
    ------
    ValueError
        If *tracker_schema* is not a plain unquoted identifier.
    """
    if "sqlite" in _dialect_name(session):
        return

    if not _SCHEMA_RE.match(tracker_schema):
        raise ValueError(f"Invalid tracker schema: must match {_SCHEMA_RE.pattern!r}, got {tracker_schema!r}")

    # set_config() with a bound parameter; the third argument scopes the
    # setting to the current transaction, equivalent to SET LOCAL.
    await session.execute(
        text("SELECT set_config('search_path', :path, true)"),
        {"path": f"{tracker_schema}, public"},
    )


@asynccontextmanager
async def get_session(
    engine: AsyncEngine,
    *,
    tracker_schema: str | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session with automatic commit/rollback semantics.

    On successful exit the session is committed.  If an exception propagates
    the session is rolled back before the error is re-raised.  When
    *tracker_schema* is given the search path is set before the session is
    handed out.
    """
    session = get_session_factory(engine)()
    try:
        if tracker_schema is not None:
            await set_tracker_search_path(session, tracker_schema)
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
