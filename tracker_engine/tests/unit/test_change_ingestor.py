"""Unit tests for tracker_engine.ingest.ingestor."""

from __future__ import annotations

import logging

import pytest

from tracker_engine.ingest.ingestor import ChangeEventIngestor, plan_change, plan_drop
from tracker_engine.models.events import ChangeEvent, DropEvent
from tracker_engine.models.tracked_object import DropMatch, ObjectKey
from tracker_engine.state.repository import TrackedObjectRepository


def _change(identity: str, tag: str, kind: str = "table", schema: str | None = "public", **kw) -> ChangeEvent:
    return ChangeEvent(object_kind=kind, schema_hint=schema, object_identity=identity, command_tag=tag, **kw)


def _drop(identity: str, tag: str, kind: str = "table", schema: str | None = "public") -> DropEvent:
    return DropEvent(object_kind=kind, schema_name=schema, object_identity=identity, command_tag=tag)


# ---------------------------------------------------------------------------
# Planning (pure)
# ---------------------------------------------------------------------------


class TestPlanChange:
    def test_resolves_key(self):
        key = plan_change(_change("public.employees", "CREATE TABLE"))
        assert key == ObjectKey(schema_name="public", object_name="employees", object_type="TABLE")

    def test_extension_member_skipped(self):
        event = _change("public.gen_random_uuid()", "CREATE FUNCTION", kind="function", in_extension=True)
        assert plan_change(event) is None

    def test_unrecognised_tag_skipped(self):
        assert plan_change(_change("public.employees", "COMMENT")) is None

    def test_default_schema_applied(self):
        key = plan_change(_change("employees", "CREATE TABLE", schema=None), default_schema="app")
        assert key.schema_name == "app"


class TestPlanDrop:
    def test_builds_match(self):
        match = plan_drop(_drop("public.employees", "DROP TABLE"))
        assert match == DropMatch(schema_name="public", object_name="employees", object_type="TABLE")

    def test_routine_name_keeps_arguments(self):
        match = plan_drop(_drop("public.f(integer)", "DROP FUNCTION", kind="function"))
        assert match.object_name == "f(integer)"

    def test_empty_schema_is_wildcard(self):
        match = plan_drop(_drop("public.employees", "DROP TABLE", schema=""))
        assert match.schema_name is None

    def test_empty_identity_is_wildcard(self):
        match = plan_drop(_drop("", "DROP TABLE"))
        assert match.object_name is None

    def test_unrecognised_tag(self):
        assert plan_drop(_drop("public.employees", "TRUNCATE")) is None


# ---------------------------------------------------------------------------
# Lifecycle against the store
# ---------------------------------------------------------------------------


class TestIngestorLifecycle:
    @pytest.mark.asyncio
    async def test_create_alter_drop(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        repo = TrackedObjectRepository(async_session)
        key = ObjectKey(schema_name="public", object_name="employees", object_type="TABLE")

        await ingestor.on_change(_change("public.employees", "CREATE TABLE", native_handle="16400"))
        created = await repo.get(key)
        assert created.status == "VALID"
        assert created.last_operation == "CREATE TABLE"
        created_at = created.created_at
        first_change = created.last_change_at

        await ingestor.on_change(_change("public.employees", "ALTER TABLE"))
        altered = await repo.get(key)
        assert altered.status == "VALID"
        assert altered.created_at == created_at
        assert altered.last_change_at > first_change
        assert altered.last_operation == "ALTER TABLE"
        altered_change = altered.last_change_at

        rows = await ingestor.on_drop(_drop("public.employees", "DROP TABLE"))
        assert len(rows) == 1
        dropped = await repo.get(key)
        assert dropped.status == "INVALID"
        assert dropped.last_operation == "DROP TABLE"
        assert dropped.last_change_at > altered_change
        assert dropped.created_at == created_at

    @pytest.mark.asyncio
    async def test_duplicate_create_keeps_one_row(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        repo = TrackedObjectRepository(async_session)
        key = ObjectKey(schema_name="public", object_name="employees", object_type="TABLE")

        await ingestor.on_change(_change("public.employees", "CREATE TABLE"))
        first_change = (await repo.get(key)).last_change_at
        await ingestor.on_change(_change("public.employees", "CREATE TABLE"))

        assert await repo.count() == 1
        assert (await repo.get(key)).last_change_at > first_change

    @pytest.mark.asyncio
    async def test_recreate_after_drop_is_valid_again(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        await ingestor.on_change(_change("public.employees", "CREATE TABLE"))
        await ingestor.on_drop(_drop("public.employees", "DROP TABLE"))
        await ingestor.on_change(_change("public.employees", "CREATE TABLE"))

        row = await TrackedObjectRepository(async_session).get(
            ObjectKey(schema_name="public", object_name="employees", object_type="TABLE")
        )
        assert row.status == "VALID"
        assert row.last_operation == "CREATE TABLE"

    @pytest.mark.asyncio
    async def test_non_ascii_table_dropped(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        key = await ingestor.on_change(_change("public.Ärzte", "CREATE TABLE"))

        rows = await ingestor.on_drop(_drop("public.Ärzte", "DROP TABLE"))

        assert len(rows) == 1
        assert (await TrackedObjectRepository(async_session).get(key)).status == "INVALID"

    @pytest.mark.asyncio
    async def test_function_name_keeps_argument_list(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        key = await ingestor.on_change(
            _change("public.get_employee_count()", "CREATE FUNCTION", kind="function")
        )

        assert key.object_name == "get_employee_count()"
        assert key.schema_name == "public"

    @pytest.mark.asyncio
    async def test_multi_object_statement(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        keys = await ingestor.on_changes(
            [
                _change("public.employees", "CREATE TABLE"),
                _change("public.employees_pkey", "CREATE TABLE", kind="index"),
                _change("public.employees_id_seq", "CREATE TABLE", kind="sequence"),
            ]
        )

        assert [k.object_type for k in keys] == ["TABLE", "INDEX", "SEQUENCE"]
        assert await TrackedObjectRepository(async_session).count() == 3


class TestIngestorSkips:
    @pytest.mark.asyncio
    async def test_extension_objects_not_written(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        result = await ingestor.on_change(
            _change("public.digest(text, text)", "CREATE FUNCTION", kind="function", in_extension=True)
        )

        assert result is None
        assert await TrackedObjectRepository(async_session).count() == 0

    @pytest.mark.asyncio
    async def test_unrecognised_tag_not_written(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        assert await ingestor.on_change(_change("public.employees", "GRANT")) is None
        assert await TrackedObjectRepository(async_session).count() == 0

    @pytest.mark.asyncio
    async def test_unresolvable_identity_logged_and_skipped(self, async_session, clock, caplog):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        with caplog.at_level(logging.WARNING, logger="tracker_engine.ingest.ingestor"):
            result = await ingestor.on_change(_change("public.", "CREATE TABLE"))

        assert result is None
        assert "Could not resolve identity" in caplog.text
        assert await TrackedObjectRepository(async_session).count() == 0

    @pytest.mark.asyncio
    async def test_drop_of_untracked_object_is_noop(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        assert await ingestor.on_drop(_drop("public.ghost", "DROP TABLE")) == []

    @pytest.mark.asyncio
    async def test_drop_with_empty_schema_matches_every_schema(self, async_session, clock):
        ingestor = ChangeEventIngestor(async_session, clock=clock)
        await ingestor.on_change(_change("public.events", "CREATE TABLE"))
        await ingestor.on_change(_change("archive.events", "CREATE TABLE", schema="archive"))

        rows = await ingestor.on_drop(_drop("events", "DROP TABLE", schema=None))

        assert sorted(r.schema_name for r in rows) == ["archive", "public"]
        assert all(r.status == "INVALID" for r in rows)
