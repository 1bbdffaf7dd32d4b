"""Unit tests for tracker_engine.ingest.pg_events."""

from __future__ import annotations

import logging

import pytest

from tracker_engine.ingest.ingestor import ChangeEventIngestor
from tracker_engine.ingest.pg_events import (
    change_event_from_row,
    change_events_from_rows,
    dispatch_ddl_commands,
    dispatch_dropped_objects,
    drop_event_from_row,
)
from tracker_engine.state.repository import TrackedObjectRepository

# Shapes of pg_event_trigger_ddl_commands() for ``CREATE TABLE public.employees
# (id serial primary key, name text)``.
CREATE_EMPLOYEES_ROWS = [
    {
        "objid": 16385,
        "command_tag": "CREATE SEQUENCE",
        "object_type": "sequence",
        "schema_name": "public",
        "object_identity": "public.employees_id_seq",
        "in_extension": False,
    },
    {
        "objid": 16386,
        "command_tag": "CREATE TABLE",
        "object_type": "table",
        "schema_name": "public",
        "object_identity": "public.employees",
        "in_extension": False,
    },
    {
        "objid": 16392,
        "command_tag": "CREATE INDEX",
        "object_type": "index",
        "schema_name": "public",
        "object_identity": "public.employees_pkey",
        "in_extension": False,
    },
    {
        "objid": 16385,
        "command_tag": "ALTER SEQUENCE",
        "object_type": "sequence",
        "schema_name": "public",
        "object_identity": "public.employees_id_seq",
        "in_extension": False,
    },
]

# pg_event_trigger_dropped_objects() for ``DROP TABLE public.employees``.
DROP_EMPLOYEES_ROWS = [
    {"object_type": "table", "schema_name": "public", "object_identity": "public.employees"},
    {"object_type": "index", "schema_name": "public", "object_identity": "public.employees_pkey"},
    {"object_type": "sequence", "schema_name": "public", "object_identity": "public.employees_id_seq"},
    {"object_type": "type", "schema_name": "public", "object_identity": "public.employees"},
]

# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------


class TestRowConversion:
    def test_change_row(self):
        event = change_event_from_row(CREATE_EMPLOYEES_ROWS[1])
        assert event.object_kind == "table"
        assert event.schema_hint == "public"
        assert event.native_handle == "16386"
        assert event.command_tag == "CREATE TABLE"
        assert event.in_extension is False

    def test_fallback_command_tag(self):
        row = {"object_type": "view", "schema_name": "public", "object_identity": "public.v", "objid": 1}
        event = change_event_from_row(row, command_tag="create view")
        assert event.command_tag == "CREATE VIEW"

    def test_drop_row(self):
        event = drop_event_from_row(DROP_EMPLOYEES_ROWS[0], command_tag="DROP TABLE")
        assert event.schema_name == "public"
        assert event.object_identity == "public.employees"

    def test_drop_row_without_identity(self):
        event = drop_event_from_row({"object_type": "table", "schema_name": None}, command_tag="DROP TABLE")
        assert event.object_identity == ""
        assert event.schema_name is None

    def test_malformed_rows_skipped(self, caplog):
        rows = [
            {"object_type": "table", "schema_name": "public", "object_identity": None, "command_tag": "CREATE TABLE"},
            CREATE_EMPLOYEES_ROWS[1],
        ]
        with caplog.at_level(logging.WARNING, logger="tracker_engine.ingest.pg_events"):
            events = change_events_from_rows(rows)

        assert [e.object_identity for e in events] == ["public.employees"]
        assert "Discarding malformed DDL command row" in caplog.text


# ---------------------------------------------------------------------------
# Dispatch into the ingestor
# ---------------------------------------------------------------------------


class TestDispatch:
    @pytest.mark.asyncio
    async def test_create_table_with_serial_key(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        applied = await dispatch_ddl_commands(ingestor, CREATE_EMPLOYEES_ROWS)

        assert applied == 4
        rows = await TrackedObjectRepository(async_session).list_all()
        assert [(r.object_name, r.object_type) for r in rows] == [
            ("employees", "TABLE"),
            ("employees_id_seq", "SEQUENCE"),
            ("employees_pkey", "INDEX"),
        ]
        seq = next(r for r in rows if r.object_type == "SEQUENCE")
        assert seq.last_operation == "ALTER SEQUENCE"
        assert seq.native_handle == "16385"

    @pytest.mark.asyncio
    async def test_drop_table_cascades(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        await dispatch_ddl_commands(ingestor, CREATE_EMPLOYEES_ROWS)

        invalidated = await dispatch_dropped_objects(ingestor, DROP_EMPLOYEES_ROWS, command_tag="DROP TABLE")

        # The row type was never tracked, so only three rows change.
        assert invalidated == 3
        rows = await TrackedObjectRepository(async_session).list_all()
        assert {r.status for r in rows} == {"INVALID"}
        assert {r.last_operation for r in rows} == {"DROP TABLE"}

    @pytest.mark.asyncio
    async def test_extension_rows_ignored(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        rows = [
            {
                "objid": 17000,
                "command_tag": "CREATE FUNCTION",
                "object_type": "function",
                "schema_name": "public",
                "object_identity": "public.digest(text,text)",
                "in_extension": True,
            }
        ]
        assert await dispatch_ddl_commands(ingestor, rows) == 0
        assert await TrackedObjectRepository(async_session).count() == 0
