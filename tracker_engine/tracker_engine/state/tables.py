"""SQLAlchemy 2.0 ORM table definitions for the tracker state store.

All tables use the modern ``Mapped`` / ``mapped_column`` declaration style
introduced in SQLAlchemy 2.0.  The ``Base`` declarative base is exported for
use by Alembic migrations and the repository layer.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """Timezone-aware ``DateTime`` that stays aware on SQLite.

    PostgreSQL round-trips ``timestamptz`` values with their offset; SQLite
    stores text and hands back naive datetimes.  Naive results are coerced
    to UTC so comparisons between stored and fresh timestamps never mix
    aware and naive values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: Any, dialect: Any) -> Any:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all tracker tables."""


# ---------------------------------------------------------------------------
# Tracked objects
# ---------------------------------------------------------------------------


class TrackedObjectTable(Base):
    """One row per distinct schema object ever observed.

    ``(schema_name, object_name, object_type)`` is unique and is the merge
    key for every insert path.  Drops flip ``status`` to ``INVALID``; rows
    are only removed by an explicit administrative reset.
    """

    __tablename__ = "tracked_objects"

    object_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    schema_name: Mapped[str] = mapped_column(Text, nullable=False)
    object_name: Mapped[str] = mapped_column(Text, nullable=False)
    object_type: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="VALID")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    last_change_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    last_operation: Mapped[str | None] = mapped_column(String(128), nullable=True)
    native_handle: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "schema_name",
            "object_name",
            "object_type",
            name="uq_tracked_objects_key",
        ),
        CheckConstraint(
            "status IN ('VALID','INVALID')",
            name="ck_tracked_objects_status",
        ),
        Index("ix_tracked_objects_schema_name", "schema_name"),
        Index("ix_tracked_objects_object_name", "object_name"),
        Index("ix_tracked_objects_object_type", "object_type"),
    )

    def __repr__(self) -> str:
        return (
            f"TrackedObjectTable(object_id={self.object_id!r}, schema_name={self.schema_name!r}, "
            f"object_name={self.object_name!r}, object_type={self.object_type!r}, status={self.status!r})"
        )
