"""SQLAlchemy DDL event bridge.

When schema objects are managed through SQLAlchemy ``MetaData`` (for
example ``metadata.create_all()`` in an application's bootstrap), the DDL
events SQLAlchemy dispatches are the native change-notification hook.  This
bridge subscribes to ``after_create`` / ``after_drop`` on each table and
records the change on the very ``Connection`` that ran the DDL, so the
tracker write commits or rolls back with the statement.

Listeners are synchronous (SQLAlchemy calls them from inside the DDL
visitor), so the bridge executes the repository's statement builders
directly instead of going through the async repository.  Both paths emit
identical SQL.

Usage::

    bridge = DDLEventBridge(default_schema="public")
    bridge.attach(app_metadata)

    async with engine.begin() as conn:
        await conn.run_sync(app_metadata.create_all)
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy import MetaData, Table, event
from sqlalchemy.engine import Connection

from tracker_engine.identity.resolver import DEFAULT_SCHEMA
from tracker_engine.ingest.ingestor import Clock, plan_change, plan_drop
from tracker_engine.models.events import ChangeEvent, DropEvent
from tracker_engine.state.repository import build_mark_invalid, build_merge_upsert, dialect_name_of

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _identity(schema: str | None, name: str) -> str:
    return f"{schema}.{name}" if schema else name


class DDLEventBridge:
    """Translate SQLAlchemy table DDL events into tracker writes.

    Parameters
    ----------
    default_schema:
        Schema recorded for tables declared without one.
    clock:
        Source of "now" for timestamps.
    """

    def __init__(self, *, default_schema: str = DEFAULT_SCHEMA, clock: Clock | None = None) -> None:
        self._default_schema = default_schema
        self._clock = clock or _utcnow
        self._attached: list[Table] = []

    @property
    def attached_tables(self) -> list[str]:
        return [table.fullname for table in self._attached]

    def attach(self, metadata: MetaData) -> None:
        """Subscribe to DDL events for every table currently in *metadata*.

        Tables added to *metadata* afterwards need another ``attach`` call.
        Attaching the same table twice is a no-op.
        """
        for table in metadata.sorted_tables:
            if event.contains(table, "after_create", self._after_create):
                continue
            event.listen(table, "after_create", self._after_create)
            event.listen(table, "after_drop", self._after_drop)
            self._attached.append(table)
        logger.info("DDL bridge attached to %d table(s)", len(self._attached))

    def detach(self) -> None:
        """Remove every listener registered by :meth:`attach`."""
        for table in self._attached:
            event.remove(table, "after_create", self._after_create)
            event.remove(table, "after_drop", self._after_drop)
        self._attached.clear()

    # -- event translation ----------------------------------------------------

    def change_events_for(self, table: Table) -> list[ChangeEvent]:
        """Events for a table creation: the table, then each of its indexes.

        SQLAlchemy emits the table's ``CREATE INDEX`` statements before
        ``after_create`` fires, so the indexes exist by then.
        """
        schema = table.schema or self._default_schema
        events = [
            ChangeEvent(
                object_kind="table",
                schema_hint=schema,
                object_identity=_identity(schema, table.name),
                command_tag="CREATE TABLE",
            )
        ]
        for index in sorted(table.indexes, key=lambda ix: str(ix.name or "")):
            if not index.name:
                continue
            events.append(
                ChangeEvent(
                    object_kind="index",
                    schema_hint=schema,
                    object_identity=_identity(schema, str(index.name)),
                    command_tag="CREATE INDEX",
                )
            )
        return events

    def drop_events_for(self, table: Table) -> list[DropEvent]:
        """Events for a table drop: the table and the indexes that went with it."""
        schema = table.schema or self._default_schema
        events = [
            DropEvent(
                object_kind="table",
                schema_name=schema,
                object_identity=_identity(schema, table.name),
                command_tag="DROP TABLE",
            )
        ]
        for index in table.indexes:
            if not index.name:
                continue
            events.append(
                DropEvent(
                    object_kind="index",
                    schema_name=schema,
                    object_identity=_identity(schema, str(index.name)),
                    command_tag="DROP TABLE",
                )
            )
        return events

    # -- listeners ------------------------------------------------------------

    def _after_create(self, table: Table, connection: Connection, **kw: Any) -> None:
        dialect_name = dialect_name_of(connection)
        now = self._clock()
        for change in self.change_events_for(table):
            try:
                key = plan_change(change, default_schema=self._default_schema)
            except ValidationError as exc:
                logger.warning("Could not resolve identity %r: %s", change.object_identity, exc)
                continue
            if key is None:
                continue
            connection.execute(build_merge_upsert(dialect_name, key, change.command_tag, now=now))
            logger.debug("Tracked %s via DDL bridge", key)

    def _after_drop(self, table: Table, connection: Connection, **kw: Any) -> None:
        now = self._clock()
        for drop in self.drop_events_for(table):
            match = plan_drop(drop)
            if match is None:
                continue
            result = connection.execute(build_mark_invalid(match, drop.command_tag, now=now))
            logger.debug("DDL bridge invalidated %d row(s) for %s", result.rowcount, drop.object_identity)
