"""Settings-driven assembly of the tracker's components.

:class:`TrackerRuntime` is the one place that turns :class:`Settings` into
running parts: the engine and session factory for the configured state
store, ingestors and the DDL bridge with the configured default schema,
introspectors that skip the configured schemas (the tracker's own
included), and the poller with the configured interval.

Typical use::

    async with TrackerRuntime(load_settings()) as runtime:
        await runtime.reconcile()
        poller = runtime.poller()
        await poller.start()
"""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from tracker_engine.catalog.introspector import (
    CatalogIntrospector,
    InspectorCatalogIntrospector,
    PostgresCatalogIntrospector,
)
from tracker_engine.catalog.poller import CatalogPoller
from tracker_engine.catalog.reconciler import reconcile
from tracker_engine.config import Settings
from tracker_engine.ingest.ddl_bridge import DDLEventBridge
from tracker_engine.ingest.ingestor import ChangeEventIngestor, Clock
from tracker_engine.models.catalog import ReconciliationSummary
from tracker_engine.projection.view import ObjectCatalogView
from tracker_engine.state.database import engine_from_settings, get_session, get_session_factory
from tracker_engine.state.sqlite_adapter import create_local_tables

logger = logging.getLogger(__name__)


class TrackerRuntime:
    """Engine, sessions, and tracker services built from one :class:`Settings`.

    Parameters
    ----------
    settings:
        Loaded configuration.
    engine:
        Pre-built engine; defaults to :func:`engine_from_settings`.
    clock:
        Source of "now" handed to every writer.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        engine: AsyncEngine | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings
        self.engine = engine or engine_from_settings(settings)
        self.session_factory = get_session_factory(self.engine)
        self._clock = clock

    @property
    def is_local(self) -> bool:
        return self.engine.dialect.name == "sqlite"

    @property
    def tracker_schema(self) -> str | None:
        """Schema put on the search path, or ``None`` where there is none."""
        return None if self.is_local else self.settings.tracker_schema

    async def start(self) -> None:
        """Prepare the store.  Local stores get their tables created here;
        PostgreSQL stores are expected to be migrated with Alembic."""
        if self.is_local:
            await create_local_tables(self.engine)
        logger.info(
            "Tracker runtime ready (%s, default_schema=%s)",
            "local SQLite" if self.is_local else f"postgres, schema {self.settings.tracker_schema}",
            self.settings.default_schema,
        )

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("Tracker runtime closed")

    async def __aenter__(self) -> TrackerRuntime:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def session(self) -> AbstractAsyncContextManager[AsyncSession]:
        """Committing session with the tracker schema on the search path."""
        return get_session(self.engine, tracker_schema=self.tracker_schema)

    def ingestor(self, session: AsyncSession) -> ChangeEventIngestor:
        return ChangeEventIngestor(session, default_schema=self.settings.default_schema, clock=self._clock)

    def ddl_bridge(self) -> DDLEventBridge:
        return DDLEventBridge(default_schema=self.settings.default_schema, clock=self._clock)

    def introspector(self, session: AsyncSession) -> CatalogIntrospector:
        """Introspector for *session* that skips every configured exclusion."""
        exclusions = self.settings.introspection_exclusions()
        if self.is_local:
            return InspectorCatalogIntrospector(session, excluded_schemas=exclusions)
        return PostgresCatalogIntrospector(session, excluded_schemas=exclusions)

    async def reconcile(self, clear_first: bool = False) -> ReconciliationSummary:
        """Seed the store from the live catalog in its own transaction."""
        async with self.session() as session:
            return await reconcile(session, self.introspector(session), clear_first, clock=self._clock)

    def poller(self) -> CatalogPoller:
        return CatalogPoller(
            self.session_factory,
            self.introspector,
            interval_seconds=self.settings.poll_interval_seconds,
            tracker_schema=self.tracker_schema,
            clock=self._clock,
        )

    def catalog_view(self, session: AsyncSession) -> ObjectCatalogView:
        return ObjectCatalogView(session)
