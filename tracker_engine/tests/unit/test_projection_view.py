"""Unit tests for tracker_engine.projection.view."""

from __future__ import annotations

import pytest

from tracker_engine.models.tracked_object import ObjectKey
from tracker_engine.projection.view import ObjectCatalogView, display_name
from tracker_engine.state.repository import TrackedObjectRepository

# ---------------------------------------------------------------------------
# Display names
# ---------------------------------------------------------------------------


class TestDisplayName:
    @pytest.mark.parametrize(
        ("stored", "object_type", "expected"),
        [
            ("get_employee_count()", "FUNCTION", "get_employee_count"),
            ("f(integer, text)", "function", "f"),
            ("public.f(integer)", "FUNCTION", "f"),
            ("public.f(public.mood)", "FUNCTION", "f"),
            ("archive_rows(date)", "PROCEDURE", "archive_rows"),
            ("employees", "TABLE", "employees"),
            ("total(integer)", "AGGREGATE", "total(integer)"),
            ("no_parens", "FUNCTION", "no_parens"),
        ],
    )
    def test_display_name(self, stored: str, object_type: str, expected: str):
        assert display_name(stored, object_type) == expected


# ---------------------------------------------------------------------------
# Catalog view
# ---------------------------------------------------------------------------


async def _seed(session, clock) -> None:
    repo = TrackedObjectRepository(session)
    for schema, name, object_type, tag in [
        ("public", "employees", "TABLE", "CREATE TABLE"),
        ("public", "get_employee_count()", "FUNCTION", "CREATE FUNCTION"),
        ("public", "get_employee_count(integer)", "FUNCTION", "CREATE FUNCTION"),
        ("public", "audit", "VIEW", "CREATE VIEW"),
        ("hr", "payroll", "TABLE", "CREATE TABLE"),
    ]:
        await repo.upsert(
            ObjectKey(schema_name=schema, object_name=name, object_type=object_type),
            tag,
            native_handle=f"{name}-oid",
            now=clock(),
        )


class TestObjectCatalogView:
    @pytest.mark.asyncio
    async def test_lists_sorted_with_display_names(self, async_session, clock):
        await _seed(async_session, clock)

        views = await ObjectCatalogView(async_session).list()

        assert [(v.owner, v.object_name, v.object_type) for v in views] == [
            ("hr", "payroll", "TABLE"),
            ("public", "audit", "VIEW"),
            ("public", "employees", "TABLE"),
            ("public", "get_employee_count", "FUNCTION"),
            ("public", "get_employee_count", "FUNCTION"),
        ]
        assert [v.full_name for v in views[3:]] == ["get_employee_count()", "get_employee_count(integer)"]

    @pytest.mark.asyncio
    async def test_exposes_all_row_fields(self, async_session, clock):
        await _seed(async_session, clock)

        [view] = await ObjectCatalogView(async_session).list(owner="hr")

        assert view.status == "VALID"
        assert view.last_operation == "CREATE TABLE"
        assert view.native_handle == "payroll-oid"
        assert view.created_at == view.last_change_at
        assert view.object_id > 0

    @pytest.mark.asyncio
    async def test_filters_are_case_insensitive(self, async_session, clock):
        await _seed(async_session, clock)
        catalog = ObjectCatalogView(async_session)

        assert len(await catalog.list(owner="PUBLIC")) == 4
        assert len(await catalog.list(object_type="function")) == 2
        assert await catalog.list(status="invalid") == []

    @pytest.mark.asyncio
    async def test_name_matches_display_or_full_name(self, async_session, clock):
        await _seed(async_session, clock)
        catalog = ObjectCatalogView(async_session)

        assert len(await catalog.list(name="GET_EMPLOYEE_COUNT")) == 2
        [view] = await catalog.list(name="get_employee_count(integer)")
        assert view.full_name == "get_employee_count(integer)"
