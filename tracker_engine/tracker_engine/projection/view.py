"""Read-only query projection over the tracked object store.

Routine names are stored with their argument list so overloads stay
distinct.  The projection additionally exposes a display name with the
qualifier and argument list stripped (``get_employee_count()`` is shown as
``get_employee_count``) while keeping the stored name as ``full_name``.
"""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tracker_engine.models.tracked_object import ROUTINE_TYPES, normalize_object_type
from tracker_engine.state.repository import TrackedObjectRepository
from tracker_engine.state.tables import TrackedObjectTable

_ROUTINE_NAME_RE = re.compile(r"(?:.*\.)?(\w+)\(.*")


def display_name(object_name: str, object_type: str) -> str:
    """Return the human-facing name for a stored object name.

    For functions and procedures everything up to the last dot before the
    opening parenthesis, and the argument list itself, are removed.  Other
    kinds, and routine names that do not look like ``name(...)``, are
    returned unchanged.
    """
    if normalize_object_type(object_type) not in ROUTINE_TYPES:
        return object_name
    return _ROUTINE_NAME_RE.sub(r"\1", object_name, count=1)


class ObjectView(BaseModel):
    """One row of the projection."""

    object_id: int
    owner: str = Field(..., description="Owning schema.")
    object_name: str = Field(..., description="Display name.")
    full_name: str = Field(..., description="Stored canonical name.")
    object_type: str
    status: str
    created_at: datetime
    last_change_at: datetime
    last_operation: str | None = None
    native_handle: str | None = None

    @classmethod
    def from_row(cls, row: TrackedObjectTable) -> ObjectView:
        return cls(
            object_id=row.object_id,
            owner=row.schema_name,
            object_name=display_name(row.object_name, row.object_type),
            full_name=row.object_name,
            object_type=row.object_type,
            status=row.status,
            created_at=row.created_at,
            last_change_at=row.last_change_at,
            last_operation=row.last_operation,
            native_handle=row.native_handle,
        )


class ObjectCatalogView:
    """Query surface for tracked objects."""

    def __init__(self, session: AsyncSession) -> None:
        self._repo = TrackedObjectRepository(session)

    async def list(
        self,
        owner: str | None = None,
        object_type: str | None = None,
        status: str | None = None,
        name: str | None = None,
    ) -> list[ObjectView]:
        """Return projection rows, sorted by owner, display name, then type.

        All filters are optional and case-insensitive.  *name* matches
        either the display name or the stored full name exactly.
        """
        rows = await self._repo.list_filtered(schema_name=owner, object_type=object_type, status=status)
        views = [ObjectView.from_row(row) for row in rows]
        if name:
            wanted = name.lower()
            views = [v for v in views if v.object_name.lower() == wanted or v.full_name.lower() == wanted]
        views.sort(key=lambda v: (v.owner, v.object_name, v.object_type, v.full_name))
        return views
