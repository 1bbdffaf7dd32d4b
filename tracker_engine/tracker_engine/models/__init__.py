"""Domain models for the tracker engine."""

from tracker_engine.models.catalog import CatalogObject, ReconciliationSummary
from tracker_engine.models.events import (
    CHANGE_TAGS,
    DROP_TAGS,
    ChangeEvent,
    DropEvent,
    is_creation_tag,
)
from tracker_engine.models.tracked_object import (
    INITIAL_LOAD_OPERATION,
    DropMatch,
    ObjectKey,
    ObjectStatus,
    ObjectType,
    normalize_object_type,
)

__all__ = [
    "CHANGE_TAGS",
    "DROP_TAGS",
    "INITIAL_LOAD_OPERATION",
    "CatalogObject",
    "ChangeEvent",
    "DropEvent",
    "DropMatch",
    "ObjectKey",
    "ObjectStatus",
    "ObjectType",
    "ReconciliationSummary",
    "is_creation_tag",
    "normalize_object_type",
]
