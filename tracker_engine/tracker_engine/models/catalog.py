"""Catalog enumeration records and reconciliation results."""

from __future__ import annotations

from pydantic import BaseModel, Field

from tracker_engine.models.tracked_object import ObjectKey


class CatalogObject(BaseModel):
    """A schema object that currently exists, as reported by introspection."""

    schema_name: str = Field(..., description="Owning namespace.")
    object_name: str = Field(..., min_length=1, description="Object name; routines include argument types.")
    object_type: str = Field(..., min_length=1, description="Classified object category.")
    native_handle: str | None = Field(default=None, description="Host-engine object identifier, if known.")
    fingerprint: str | None = Field(
        default=None,
        description="Opaque digest of the object's definition, used to detect alterations between snapshots.",
    )

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(
            schema_name=self.schema_name,
            object_name=self.object_name,
            object_type=self.object_type,
        )


class ReconciliationSummary(BaseModel):
    """Outcome of a single reconciliation pass."""

    cleared: bool = Field(default=False, description="Whether the store was emptied first.")
    enumerated: int = Field(default=0, ge=0, description="Objects reported by the introspector.")
    inserted: int = Field(default=0, ge=0, description="Rows newly added to the store.")
    skipped: int = Field(default=0, ge=0, description="Objects already tracked and left untouched.")
    by_type: dict[str, int] = Field(
        default_factory=dict,
        description="Inserted row counts per object type.",
    )
