"""Schema-change events delivered by the host engine.

Two event classes exist, matching the two notification points a database
exposes for DDL:

* :class:`ChangeEvent` -- an object was created or altered.  Emitted after
  the statement's effects are visible, so the object still exists and its
  native handle is known.
* :class:`DropEvent` -- an object was dropped.  Emitted after removal, so
  only what the engine captured beforehand (kind, schema, identity) is
  available.

One event is delivered per affected object; a single statement that
touches several objects yields several events carrying the same tag.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

# Statement tags the create/alter path reacts to.
CHANGE_TAGS: frozenset[str] = frozenset(
    {
        "CREATE TABLE",
        "ALTER TABLE",
        "CREATE TABLE AS",
        "CREATE INDEX",
        "ALTER INDEX",
        "CREATE SEQUENCE",
        "ALTER SEQUENCE",
        "CREATE VIEW",
        "ALTER VIEW",
        "CREATE MATERIALIZED VIEW",
        "ALTER MATERIALIZED VIEW",
        "CREATE FUNCTION",
        "ALTER FUNCTION",
        "CREATE PROCEDURE",
        "ALTER PROCEDURE",
        "CREATE TRIGGER",
        "ALTER TRIGGER",
        "CREATE SCHEMA",
        "ALTER SCHEMA",
        "CREATE TYPE",
        "ALTER TYPE",
        "CREATE DOMAIN",
        "ALTER DOMAIN",
    }
)

# Statement tags the drop path reacts to.
DROP_TAGS: frozenset[str] = frozenset(
    {
        "DROP TABLE",
        "DROP INDEX",
        "DROP SEQUENCE",
        "DROP VIEW",
        "DROP MATERIALIZED VIEW",
        "DROP FUNCTION",
        "DROP PROCEDURE",
        "DROP TRIGGER",
        "DROP SCHEMA",
        "DROP TYPE",
        "DROP DOMAIN",
    }
)

SCHEMA_TAGS: frozenset[str] = frozenset({"CREATE SCHEMA", "ALTER SCHEMA"})


def normalize_tag(tag: str) -> str:
    """Collapse whitespace and uppercase a command tag."""
    return " ".join(tag.split()).upper()


def is_creation_tag(tag: str) -> bool:
    """Return ``True`` when *tag* denotes a creation-class operation."""
    return tag.strip().upper().startswith("CREATE")


class ChangeEvent(BaseModel):
    """An object created or altered by a DDL statement."""

    object_kind: str = Field(..., description="Engine-reported object kind, e.g. 'table'.")
    schema_hint: str | None = Field(default=None, description="Namespace the object lives in, if reported.")
    object_identity: str = Field(..., min_length=1, description="Engine-supplied identity string.")
    native_handle: str | None = Field(default=None, description="Host-engine internal object identifier.")
    command_tag: str = Field(..., min_length=1, description="Tag of the triggering statement.")
    in_extension: bool = Field(
        default=False,
        description="True when the object belongs to an extension being installed.",
    )

    @field_validator("native_handle", mode="before")
    @classmethod
    def coerce_handle(cls, v: object) -> str | None:
        if v is None:
            return None
        return str(v)

    @field_validator("command_tag")
    @classmethod
    def clean_tag(cls, v: str) -> str:
        return normalize_tag(v)

    @property
    def is_recognized(self) -> bool:
        return self.command_tag in CHANGE_TAGS


class DropEvent(BaseModel):
    """An object removed by a DDL statement."""

    object_kind: str = Field(..., description="Engine-reported object kind, e.g. 'view'.")
    schema_name: str | None = Field(default=None, description="Schema the object lived in, if reported.")
    object_identity: str = Field(default="", description="Identity the object had before removal.")
    command_tag: str = Field(..., min_length=1, description="Tag of the triggering statement.")

    @field_validator("command_tag")
    @classmethod
    def clean_tag(cls, v: str) -> str:
        return normalize_tag(v)

    @property
    def is_recognized(self) -> bool:
        return self.command_tag in DROP_TAGS
