"""Repository access to the tracker state store.

:class:`TrackedObjectRepository` takes an ``AsyncSession`` at construction
time and operates within the caller's transaction boundary.  All writes call
``session.flush()`` so that generated defaults are populated; the caller is
responsible for calling ``session.commit()`` (or relying on the
``get_session`` context manager).  Nothing here commits: a tracker write
lives and dies with the DDL transaction that triggered it.

The statement builders (:func:`build_merge_upsert`,
:func:`build_insert_if_absent`, :func:`build_mark_invalid`) are module
level so the synchronous DDL bridge can execute exactly the same SQL on a
plain ``Connection``.

Three write paths exist and are deliberately kept apart:

* **merge upsert** -- create/alter events.  ``ON CONFLICT DO UPDATE``.
* **insert if absent** -- reconciliation.  ``ON CONFLICT DO NOTHING`` so a
  re-run never resets real change history.
* **mark invalid** -- drop events.  A best-effort, case-insensitive
  pattern match that may affect zero or more rows; not an exact-key lookup.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ColumnElement, delete, func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tracker_engine.models.events import is_creation_tag
from tracker_engine.models.tracked_object import (
    INITIAL_LOAD_OPERATION,
    DropMatch,
    ObjectKey,
    ObjectStatus,
)
from tracker_engine.state.tables import TrackedObjectTable

logger = logging.getLogger(__name__)

# Columns forming the canonical-key unique constraint.
KEY_COLUMNS = ["schema_name", "object_name", "object_type"]

_LIKE_ESCAPE = "/"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _escape_like(value: str) -> str:
    """Escape LIKE metacharacters so they are treated as literal characters.

    Uses ``/`` as the escape character (passed explicitly as ``ESCAPE``) so
    the pattern behaves identically on PostgreSQL and SQLite.
    """
    return value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2).replace("%", "/%").replace("_", "/_")


def dialect_name_of(bind: Any) -> str:
    """Return the dialect name of a session bind, engine, or connection."""
    return str(getattr(getattr(bind, "dialect", None), "name", ""))


def _insert_for(dialect_name: str) -> Any:
    if "postgresql" in dialect_name:
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        return _pg_insert
    if "sqlite" in dialect_name:
        from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

        return _sqlite_insert
    raise ValueError(f"Upserts are not supported on dialect {dialect_name!r}")


def _folded_equals(column: Any, value: str) -> ColumnElement[bool]:
    return func.lower(column) == func.lower(literal(value))


def _key_values(key: ObjectKey) -> dict[str, Any]:
    return {
        "schema_name": key.schema_name,
        "object_name": key.object_name,
        "object_type": key.object_type,
    }


# ---------------------------------------------------------------------------
# Statement builders
# ---------------------------------------------------------------------------


def build_merge_upsert(
    dialect_name: str,
    key: ObjectKey,
    operation: str,
    *,
    now: datetime,
    native_handle: str | None = None,
) -> Any:
    """Build the create/alter ``INSERT ... ON CONFLICT DO UPDATE`` statement.

    On conflict ``last_change_at`` and ``last_operation`` always move
    forward; ``native_handle`` is refreshed when one is supplied.  Only a
    creation-class tag (prefix ``CREATE``, any case) resets ``status`` to
    VALID and ``created_at`` to *now*; an ALTER leaves both untouched, even
    for a row that is currently INVALID.
    """
    values: dict[str, Any] = {
        **_key_values(key),
        "status": ObjectStatus.VALID.value,
        "created_at": now,
        "last_change_at": now,
        "last_operation": operation,
        "native_handle": native_handle,
    }
    update_columns = ["last_change_at", "last_operation"]
    if native_handle is not None:
        update_columns.append("native_handle")
    if is_creation_tag(operation):
        update_columns.extend(["status", "created_at"])

    stmt = _insert_for(dialect_name)(TrackedObjectTable).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=KEY_COLUMNS,
        set_={col: getattr(stmt.excluded, col) for col in update_columns},
    )


def build_insert_if_absent(
    dialect_name: str,
    key: ObjectKey,
    operation: str = INITIAL_LOAD_OPERATION,
    *,
    now: datetime,
    native_handle: str | None = None,
) -> Any:
    """Build the reconciliation ``INSERT ... ON CONFLICT DO NOTHING`` statement."""
    values: dict[str, Any] = {
        **_key_values(key),
        "status": ObjectStatus.VALID.value,
        "created_at": now,
        "last_change_at": now,
        "last_operation": operation,
        "native_handle": native_handle,
    }
    stmt = _insert_for(dialect_name)(TrackedObjectTable).values(**values)
    return stmt.on_conflict_do_nothing(index_elements=KEY_COLUMNS)


def drop_match_clauses(match: DropMatch) -> list[ColumnElement[bool]]:
    """WHERE clauses for a best-effort drop match.

    Type always participates; a missing schema or name matches every row.
    Both sides are folded by the database's own ``lower()`` so a stored name
    always matches the identical reported name, whatever its alphabet.
    """
    clauses: list[ColumnElement[bool]] = [
        _folded_equals(TrackedObjectTable.object_type, match.object_type),
    ]
    if match.schema_name:
        clauses.append(_folded_equals(TrackedObjectTable.schema_name, match.schema_name))
    if match.object_name:
        clauses.append(_folded_equals(TrackedObjectTable.object_name, match.object_name))
    return clauses


def build_mark_invalid(match: DropMatch, operation: str, *, now: datetime) -> Any:
    """Build the drop ``UPDATE`` that flips every matching row to INVALID."""
    return (
        update(TrackedObjectTable)
        .where(*drop_match_clauses(match))
        .values(
            status=ObjectStatus.INVALID.value,
            last_change_at=now,
            last_operation=operation,
        )
    )


# ---------------------------------------------------------------------------
# TrackedObjectRepository
# ---------------------------------------------------------------------------


class TrackedObjectRepository:
    """CRUD operations for the ``tracked_objects`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def dialect_name(self) -> str:
        return dialect_name_of(self._session.get_bind())

    async def get(self, key: ObjectKey) -> TrackedObjectTable | None:
        """Fetch a single row by its exact canonical key."""
        stmt = (
            select(TrackedObjectTable)
            .where(
                TrackedObjectTable.schema_name == key.schema_name,
                TrackedObjectTable.object_name == key.object_name,
                TrackedObjectTable.object_type == key.object_type,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, object_id: int) -> TrackedObjectTable | None:
        stmt = (
            select(TrackedObjectTable)
            .where(TrackedObjectTable.object_id == object_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(
        self,
        key: ObjectKey,
        operation: str,
        *,
        native_handle: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Insert a VALID row for *key*, or merge *operation* into the existing one.

        Never raises on a duplicate key; see :func:`build_merge_upsert` for
        the merge rules.
        """
        stmt = build_merge_upsert(
            self.dialect_name,
            key,
            operation,
            now=now or _utcnow(),
            native_handle=native_handle,
        )
        await self._session.execute(stmt)
        await self._session.flush()

    async def insert_if_absent(
        self,
        key: ObjectKey,
        operation: str = INITIAL_LOAD_OPERATION,
        *,
        native_handle: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Insert a VALID row for *key* unless one already exists.

        Returns ``True`` when a row was inserted, ``False`` when an existing
        row was left untouched.
        """
        stmt = build_insert_if_absent(
            self.dialect_name,
            key,
            operation,
            now=now or _utcnow(),
            native_handle=native_handle,
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return bool(result.rowcount)

    async def mark_invalid(
        self,
        match: DropMatch,
        operation: str,
        *,
        now: datetime | None = None,
    ) -> list[TrackedObjectTable]:
        """Transition every row matching *match* to INVALID.

        Returns the affected rows, which may be empty when the dropped object
        was never tracked.  Rows are locked for the remainder of the
        transaction on backends that support ``FOR UPDATE``.
        """
        stmt = (
            select(TrackedObjectTable)
            .where(*drop_match_clauses(match))
            .order_by(TrackedObjectTable.object_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        rows = list(result.scalars().all())

        changed_at = now or _utcnow()
        for row in rows:
            row.status = ObjectStatus.INVALID.value
            row.last_change_at = changed_at
            row.last_operation = operation
        await self._session.flush()
        return rows

    async def list_filtered(
        self,
        schema_name: str | None = None,
        object_type: str | None = None,
        status: str | None = None,
        search: str | None = None,
    ) -> list[TrackedObjectTable]:
        """Return rows matching the given filters, ordered by key.

        Parameters
        ----------
        schema_name:
            Case-insensitive exact match on the owning schema.
        object_type:
            Case-insensitive exact match on the object category.
        status:
            ``VALID`` or ``INVALID`` (any case).
        search:
            Case-insensitive substring match on the stored object name.
        """
        stmt = select(TrackedObjectTable).execution_options(populate_existing=True)
        if schema_name:
            stmt = stmt.where(_folded_equals(TrackedObjectTable.schema_name, schema_name))
        if object_type:
            stmt = stmt.where(_folded_equals(TrackedObjectTable.object_type, object_type))
        if status:
            stmt = stmt.where(TrackedObjectTable.status == status.upper())
        if search:
            stmt = stmt.where(
                TrackedObjectTable.object_name.ilike(f"%{_escape_like(search)}%", escape=_LIKE_ESCAPE)
            )
        stmt = stmt.order_by(
            TrackedObjectTable.schema_name,
            TrackedObjectTable.object_name,
            TrackedObjectTable.object_type,
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_all(self) -> list[TrackedObjectTable]:
        return await self.list_filtered()

    async def count(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(TrackedObjectTable))
        return int(result.scalar_one())

    async def clear(self) -> int:
        """Delete every tracked row.  Administrative reset only."""
        result = await self._session.execute(delete(TrackedObjectTable))
        await self._session.flush()
        # Drop stale ORM instances for rows that no longer exist.
        self._session.expunge_all()
        deleted = int(result.rowcount or 0)
        logger.info("Cleared %d tracked object row(s)", deleted)
        return deleted
