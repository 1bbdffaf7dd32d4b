"""Catalog introspection: enumerate the schema objects that exist right now.

The reconciliation loader and the snapshot poller consume a
:class:`CatalogIntrospector`, a read-only source of :class:`CatalogObject`
records.  Two implementations are provided:

* :class:`PostgresCatalogIntrospector` queries ``pg_catalog`` directly and
  covers every category the tracker knows (relations, partitions, indexes,
  routines, schemas, and user-defined types).
* :class:`InspectorCatalogIntrospector` uses ``sqlalchemy.inspect()`` and
  works on any dialect, at the cost of only seeing what the inspector
  exposes (schemas, tables, views, materialized views, sequences, indexes).

Kinds that cannot be classified are reported as ``OTHER`` rather than
dropped.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable
from typing import Any, Protocol

from sqlalchemy import inspect, text
from sqlalchemy.engine import Inspector
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from tracker_engine.config import DEFAULT_TRACKER_SCHEMA, SYSTEM_SCHEMAS
from tracker_engine.models.catalog import CatalogObject
from tracker_engine.models.tracked_object import ObjectType
from tracker_engine.state.tables import Base

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_SCHEMAS = (*SYSTEM_SCHEMAS, DEFAULT_TRACKER_SCHEMA)


class IntrospectionError(Exception):
    """Raised when the catalog cannot be enumerated."""


class CatalogIntrospector(Protocol):
    """Read-only enumeration of currently existing schema objects."""

    async def enumerate(self) -> list[CatalogObject]: ...


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

_RELKIND_TYPES = {
    "v": ObjectType.VIEW,
    "m": ObjectType.MATERIALIZED_VIEW,
    "S": ObjectType.SEQUENCE,
    "i": ObjectType.INDEX,
    "I": ObjectType.INDEX,
}

_TYPTYPE_TYPES = {
    "b": ObjectType.TYPE,
    "c": ObjectType.TYPE,
    "d": ObjectType.DOMAIN,
    "e": ObjectType.ENUM,
    "p": ObjectType.PSEUDO_TYPE,
    "r": ObjectType.RANGE,
}

_PROKIND_TYPES = {
    "f": ObjectType.FUNCTION,
    "p": ObjectType.PROCEDURE,
    "a": ObjectType.AGGREGATE,
    "w": ObjectType.WINDOW,
}


def classify_relation(relkind: str, is_partition: bool = False) -> str:
    """Map a ``pg_class.relkind`` code (plus partition flag) to an object type.

    A partitioned table that is itself a partition of another table (a
    sub-partitioned partition) is classified as ``PARTITION``.
    """
    if relkind == "r":
        return ObjectType.PARTITION.value if is_partition else ObjectType.TABLE.value
    if relkind == "p":
        return ObjectType.PARTITION.value if is_partition else ObjectType.PARTITIONED_TABLE.value
    return _RELKIND_TYPES.get(relkind, ObjectType.OTHER).value


def classify_type(typtype: str) -> str:
    """Map a ``pg_type.typtype`` code to an object type."""
    return _TYPTYPE_TYPES.get(typtype, ObjectType.OTHER).value


def classify_routine(prokind: str) -> str:
    """Map a ``pg_proc.prokind`` code to an object type."""
    return _PROKIND_TYPES.get(prokind, ObjectType.OTHER).value


def _digest(parts: Iterable[str]) -> str:
    return hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------

# Excludes toast/temp namespaces, the configured schemas, and (unless
# requested) objects owned by an installed extension.
_RELATIONS_SQL = """
SELECT c.oid::text AS native_handle,
       n.nspname AS schema_name,
       c.relname AS object_name,
       c.relkind::text AS relkind,
       c.relispartition AS is_partition,
       (SELECT md5(string_agg(a.attname || ':' || a.atttypid::text, ',' ORDER BY a.attnum))
          FROM pg_catalog.pg_attribute a
         WHERE a.attrelid = c.oid AND a.attnum > 0 AND NOT a.attisdropped) AS fingerprint
  FROM pg_catalog.pg_class c
  JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
 WHERE c.relkind IN ('r', 'p', 'v', 'm', 'S', 'i', 'I', 'f')
   AND NOT (n.nspname = ANY(:excluded))
   AND n.nspname !~ '^pg_(toast|temp)'
   AND (:with_extensions OR NOT EXISTS (
        SELECT 1 FROM pg_catalog.pg_depend d
         WHERE d.classid = 'pg_catalog.pg_class'::regclass AND d.objid = c.oid AND d.deptype = 'e'))
"""

_SCHEMAS_SQL = """
SELECT n.oid::text AS native_handle,
       n.nspname AS schema_name
  FROM pg_catalog.pg_namespace n
 WHERE n.nspname !~ '^pg_'
   AND NOT (n.nspname = ANY(:excluded))
"""

# Array shadow types and relation row types (other than standalone
# composite types) are skipped.
_TYPES_SQL = """
SELECT t.oid::text AS native_handle,
       n.nspname AS schema_name,
       t.typname AS object_name,
       t.typtype::text AS typtype
  FROM pg_catalog.pg_type t
  JOIN pg_catalog.pg_namespace n ON n.oid = t.typnamespace
 WHERE (t.typrelid = 0 OR (SELECT c.relkind = 'c' FROM pg_catalog.pg_class c WHERE c.oid = t.typrelid))
   AND NOT EXISTS (SELECT 1 FROM pg_catalog.pg_type el WHERE el.oid = t.typelem AND el.typarray = t.oid)
   AND NOT (n.nspname = ANY(:excluded))
   AND n.nspname !~ '^pg_(toast|temp)'
   AND (:with_extensions OR NOT EXISTS (
        SELECT 1 FROM pg_catalog.pg_depend d
         WHERE d.classid = 'pg_catalog.pg_type'::regclass AND d.objid = t.oid AND d.deptype = 'e'))
"""

_ROUTINES_SQL = """
SELECT p.oid::text AS native_handle,
       n.nspname AS schema_name,
       p.proname || '(' || pg_catalog.oidvectortypes(p.proargtypes) || ')' AS object_name,
       p.prokind::text AS prokind,
       md5(coalesce(p.prosrc, '')) AS fingerprint
  FROM pg_catalog.pg_proc p
  JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
 WHERE NOT (n.nspname = ANY(:excluded))
   AND n.nspname !~ '^pg_(toast|temp)'
   AND (:with_extensions OR NOT EXISTS (
        SELECT 1 FROM pg_catalog.pg_depend d
         WHERE d.classid = 'pg_catalog.pg_proc'::regclass AND d.objid = p.oid AND d.deptype = 'e'))
"""


class PostgresCatalogIntrospector:
    """Enumerate objects from PostgreSQL's system catalogs.

    Parameters
    ----------
    session:
        Active session on the database to enumerate.
    excluded_schemas:
        Schemas to skip entirely.  ``pg_toast*`` and ``pg_temp*`` are always
        skipped.  Should include the tracker's own schema.
    include_extension_members:
        When ``False`` (the default) objects owned by an extension are
        omitted, matching the change path which ignores extension installs.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        excluded_schemas: Iterable[str] = DEFAULT_EXCLUDED_SCHEMAS,
        include_extension_members: bool = False,
    ) -> None:
        self._session = session
        self._excluded = sorted(set(excluded_schemas))
        self._with_extensions = include_extension_members

    async def _fetch(self, sql: str) -> list[Any]:
        params = {"excluded": self._excluded, "with_extensions": self._with_extensions}
        try:
            result = await self._session.execute(text(sql), params)
        except SQLAlchemyError as exc:
            raise IntrospectionError(f"Catalog query failed: {exc}") from exc
        return list(result.mappings().all())

    async def enumerate(self) -> list[CatalogObject]:
        objects: list[CatalogObject] = []

        for row in await self._fetch(_RELATIONS_SQL):
            objects.append(
                CatalogObject(
                    schema_name=row["schema_name"],
                    object_name=row["object_name"],
                    object_type=classify_relation(row["relkind"], bool(row["is_partition"])),
                    native_handle=row["native_handle"],
                    fingerprint=row["fingerprint"],
                )
            )

        for row in await self._fetch(_SCHEMAS_SQL):
            objects.append(
                CatalogObject(
                    schema_name=row["schema_name"],
                    object_name=row["schema_name"],
                    object_type=ObjectType.SCHEMA.value,
                    native_handle=row["native_handle"],
                )
            )

        for row in await self._fetch(_TYPES_SQL):
            objects.append(
                CatalogObject(
                    schema_name=row["schema_name"],
                    object_name=row["object_name"],
                    object_type=classify_type(row["typtype"]),
                    native_handle=row["native_handle"],
                )
            )

        for row in await self._fetch(_ROUTINES_SQL):
            objects.append(
                CatalogObject(
                    schema_name=row["schema_name"],
                    object_name=row["object_name"],
                    object_type=classify_routine(row["prokind"]),
                    native_handle=row["native_handle"],
                    fingerprint=row["fingerprint"],
                )
            )

        logger.info("Enumerated %d catalog object(s) from pg_catalog", len(objects))
        return objects


# ---------------------------------------------------------------------------
# Dialect-neutral (sqlalchemy.inspect)
# ---------------------------------------------------------------------------


class InspectorCatalogIntrospector:
    """Enumerate objects through SQLAlchemy's runtime inspection API.

    Parameters
    ----------
    session:
        Active session on the database to enumerate.
    excluded_schemas:
        Schemas to skip entirely.
    excluded_tables:
        Table names to skip, together with their indexes.  Defaults to the
        tracker's own tables.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        excluded_schemas: Iterable[str] = DEFAULT_EXCLUDED_SCHEMAS,
        excluded_tables: Iterable[str] | None = None,
    ) -> None:
        self._session = session
        self._excluded_schemas = set(excluded_schemas)
        self._excluded_tables = set(excluded_tables) if excluded_tables is not None else set(Base.metadata.tables)

    async def enumerate(self) -> list[CatalogObject]:
        try:
            objects = await self._session.run_sync(self._enumerate_sync)
        except SQLAlchemyError as exc:
            raise IntrospectionError(f"Catalog inspection failed: {exc}") from exc
        logger.info("Enumerated %d catalog object(s) via inspector", len(objects))
        return objects

    def _enumerate_sync(self, sync_session: Session) -> list[CatalogObject]:
        inspector = inspect(sync_session.connection())
        objects: list[CatalogObject] = []
        for schema in inspector.get_schema_names():
            if schema in self._excluded_schemas or schema.startswith("pg_"):
                continue
            objects.append(
                CatalogObject(
                    schema_name=schema,
                    object_name=schema,
                    object_type=ObjectType.SCHEMA.value,
                )
            )
            objects.extend(self._schema_objects(inspector, schema))
        return objects

    def _schema_objects(self, inspector: Inspector, schema: str) -> list[CatalogObject]:
        objects: list[CatalogObject] = []

        for table in inspector.get_table_names(schema=schema):
            if table in self._excluded_tables:
                continue
            columns = inspector.get_columns(table, schema=schema)
            objects.append(
                CatalogObject(
                    schema_name=schema,
                    object_name=table,
                    object_type=ObjectType.TABLE.value,
                    fingerprint=_digest(f"{col['name']}:{col['type']}" for col in columns),
                )
            )
            for index in inspector.get_indexes(table, schema=schema):
                if not index.get("name"):
                    continue
                objects.append(
                    CatalogObject(
                        schema_name=schema,
                        object_name=index["name"],
                        object_type=ObjectType.INDEX.value,
                        fingerprint=_digest(str(col) for col in index.get("column_names", [])),
                    )
                )

        for view in inspector.get_view_names(schema=schema):
            definition = inspector.get_view_definition(view, schema=schema) or ""
            objects.append(
                CatalogObject(
                    schema_name=schema,
                    object_name=view,
                    object_type=ObjectType.VIEW.value,
                    fingerprint=_digest([str(definition)]),
                )
            )

        for name, object_type in (
            ("get_materialized_view_names", ObjectType.MATERIALIZED_VIEW),
            ("get_sequence_names", ObjectType.SEQUENCE),
        ):
            try:
                names = getattr(inspector, name)(schema=schema)
            except NotImplementedError:
                continue
            objects.extend(
                CatalogObject(schema_name=schema, object_name=n, object_type=object_type.value) for n in names
            )

        return objects
