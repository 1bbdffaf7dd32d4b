"""Adapters for PostgreSQL event-trigger result rows.

PostgreSQL exposes DDL notifications through two set-returning functions
available inside event triggers:

* ``pg_event_trigger_ddl_commands()`` at ``ddl_command_end`` -- one row per
  created/altered object, with ``object_type``, ``schema_name``,
  ``object_identity``, ``objid``, ``command_tag`` and ``in_extension``.
* ``pg_event_trigger_dropped_objects()`` at ``sql_drop`` -- one row per
  removed object, with ``object_type``, ``schema_name`` and
  ``object_identity`` (no command tag; the trigger's ``TG_TAG`` applies).

Whatever relays those rows to this process (a logging table, NOTIFY, a
logical decoding plugin) hands them here as mappings.  Rows that fail
validation are logged and dropped so a single malformed row never blocks
the rest of the statement's events.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from tracker_engine.ingest.ingestor import ChangeHandler
from tracker_engine.models.events import ChangeEvent, DropEvent

logger = logging.getLogger(__name__)


def change_event_from_row(row: Mapping[str, Any], *, command_tag: str | None = None) -> ChangeEvent:
    """Build a :class:`ChangeEvent` from a ``pg_event_trigger_ddl_commands()`` row.

    *command_tag* (the trigger's ``TG_TAG``) is used when the row carries
    none of its own.
    """
    return ChangeEvent(
        object_kind=row.get("object_type") or "",
        schema_hint=row.get("schema_name"),
        object_identity=row.get("object_identity") or "",
        native_handle=row.get("objid"),
        command_tag=row.get("command_tag") or command_tag or "",
        in_extension=bool(row.get("in_extension", False)),
    )


def drop_event_from_row(row: Mapping[str, Any], *, command_tag: str) -> DropEvent:
    """Build a :class:`DropEvent` from a ``pg_event_trigger_dropped_objects()`` row."""
    return DropEvent(
        object_kind=row.get("object_type") or "",
        schema_name=row.get("schema_name"),
        object_identity=row.get("object_identity") or "",
        command_tag=command_tag,
    )


def change_events_from_rows(
    rows: Iterable[Mapping[str, Any]],
    *,
    command_tag: str | None = None,
) -> list[ChangeEvent]:
    """Convert ``ddl_command_end`` rows, skipping any that fail validation."""
    events: list[ChangeEvent] = []
    for row in rows:
        try:
            events.append(change_event_from_row(row, command_tag=command_tag))
        except ValidationError as exc:
            logger.warning("Discarding malformed DDL command row %r: %s", dict(row), exc)
    return events


def drop_events_from_rows(rows: Iterable[Mapping[str, Any]], *, command_tag: str) -> list[DropEvent]:
    """Convert ``sql_drop`` rows, skipping any that fail validation."""
    events: list[DropEvent] = []
    for row in rows:
        try:
            events.append(drop_event_from_row(row, command_tag=command_tag))
        except ValidationError as exc:
            logger.warning("Discarding malformed dropped-object row %r: %s", dict(row), exc)
    return events


async def dispatch_ddl_commands(
    handler: ChangeHandler,
    rows: Iterable[Mapping[str, Any]],
    *,
    command_tag: str | None = None,
) -> int:
    """Deliver ``ddl_command_end`` rows to *handler* in reported order.

    Returns the number of events the handler applied.
    """
    applied = 0
    for event in change_events_from_rows(rows, command_tag=command_tag):
        if await handler.on_change(event) is not None:
            applied += 1
    return applied


async def dispatch_dropped_objects(
    handler: ChangeHandler,
    rows: Iterable[Mapping[str, Any]],
    *,
    command_tag: str,
) -> int:
    """Deliver ``sql_drop`` rows to *handler*; returns the number of rows invalidated."""
    invalidated = 0
    for event in drop_events_from_rows(rows, command_tag=command_tag):
        invalidated += len(await handler.on_drop(event))
    return invalidated
