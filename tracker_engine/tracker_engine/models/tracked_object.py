"""Tracked object models: canonical keys, status, and object categories.

Every schema object the tracker knows about is identified by the triple
``(schema, name, type)``.  That triple is the merge key for every write
path into the store, so it is modelled here as a frozen, hashable
:class:`ObjectKey` that the resolver, the ingestor, and the reconciliation
loader all share.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ObjectStatus(str, Enum):
    """Existence status of a tracked object."""

    VALID = "VALID"
    INVALID = "INVALID"


class ObjectType(str, Enum):
    """Object categories recognised by the tracker.

    Event kinds reported by the host engine are stored uppercased as-is;
    this enum lists the categories the catalog introspectors classify into.
    Anything they cannot classify becomes ``OTHER``.
    """

    TABLE = "TABLE"
    PARTITION = "PARTITION"
    PARTITIONED_TABLE = "PARTITIONED TABLE"
    VIEW = "VIEW"
    MATERIALIZED_VIEW = "MATERIALIZED VIEW"
    SEQUENCE = "SEQUENCE"
    INDEX = "INDEX"
    FUNCTION = "FUNCTION"
    PROCEDURE = "PROCEDURE"
    AGGREGATE = "AGGREGATE"
    WINDOW = "WINDOW"
    TRIGGER = "TRIGGER"
    SCHEMA = "SCHEMA"
    TYPE = "TYPE"
    DOMAIN = "DOMAIN"
    ENUM = "ENUM"
    RANGE = "RANGE"
    PSEUDO_TYPE = "PSEUDO-TYPE"
    OTHER = "OTHER"


# Kinds whose identity strings carry an argument list that may itself
# contain dots (qualified type names).
ROUTINE_TYPES: frozenset[str] = frozenset({ObjectType.FUNCTION.value, ObjectType.PROCEDURE.value})

INITIAL_LOAD_OPERATION = "INITIAL_LOAD"


def normalize_object_type(kind: str | None) -> str:
    """Uppercase and trim an object kind, mapping blanks to ``OTHER``."""
    value = (kind or "").strip().upper()
    return value or ObjectType.OTHER.value


class ObjectKey(BaseModel):
    """Canonical ``(schema, name, type)`` identity of a tracked object."""

    model_config = ConfigDict(frozen=True)

    schema_name: str = Field(..., description="Owning namespace.")
    object_name: str = Field(..., min_length=1, description="Canonical object name.")
    object_type: str = Field(..., min_length=1, description="Uppercase object category.")

    def as_tuple(self) -> tuple[str, str, str]:
        return (self.schema_name, self.object_name, self.object_type)

    def __str__(self) -> str:
        return f"{self.object_type} {self.schema_name}.{self.object_name}"


class DropMatch(BaseModel):
    """Best-effort match criteria for a dropped object.

    Unlike :class:`ObjectKey` this is not an exact identity: ``None`` for
    ``schema_name`` or ``object_name`` means "match whatever is stored".
    All comparisons are case-insensitive.
    """

    model_config = ConfigDict(frozen=True)

    schema_name: str | None = None
    object_name: str | None = None
    object_type: str = Field(..., min_length=1)
