"""Canonical key resolution for engine-supplied object identities.

The host engine reports each affected object with a raw, dot-separated
identity string (``public.employees``, ``public.get_count(integer)``,
``sales``), an object kind, and usually a namespace hint.  This module
turns that triple into the ``(schema, name, type)`` key the store merges on.

**Name rule** (by number of dot-separated segments):

1. One segment -- the whole string is the name.
2. Two segments -- the second segment is the name.
3. Three or more -- for FUNCTION / PROCEDURE the name is every segment from
   the second onward, rejoined with dots (argument type names may contain
   dots).  For any other kind the full identity string is kept unchanged.

Splitting is a plain split on ``.``; quoted identifiers that contain dots
are not special-cased and fall through rule 3.

**Schema rule**:

* CREATE SCHEMA / ALTER SCHEMA events, and SCHEMA-kind objects, use the
  identity string itself (the schema being acted on).
* Otherwise the namespace hint, when non-empty.
* Otherwise the first segment of a qualified identity (two segments, or a
  routine signature).
* Otherwise the caller's default schema.

Everything here is pure: no I/O, no state, same input -> same key.
"""

from __future__ import annotations

from tracker_engine.models.events import SCHEMA_TAGS, normalize_tag
from tracker_engine.models.tracked_object import (
    ROUTINE_TYPES,
    ObjectKey,
    ObjectType,
    normalize_object_type,
)

DEFAULT_SCHEMA = "public"


def _segments(identity: str) -> list[str]:
    return identity.split(".")


def resolve_object_name(identity: str, object_type: str) -> str:
    """Return the canonical object name for *identity*.

    Parameters
    ----------
    identity:
        Raw identity string as reported by the engine.
    object_type:
        Object kind; compared case-insensitively against the routine kinds.

    Returns
    -------
    str
        The canonical name.  Identities with an unexpected shape fall back
        to the whole string rather than raising.
    """
    parts = _segments(identity)
    if len(parts) == 1:
        return identity
    if len(parts) == 2:
        return parts[1]
    if normalize_object_type(object_type) in ROUTINE_TYPES:
        return ".".join(parts[1:])
    return identity


def resolve_schema(
    identity: str,
    object_type: str,
    schema_hint: str | None = None,
    *,
    command_tag: str = "",
    default_schema: str = DEFAULT_SCHEMA,
) -> str:
    """Return the owning schema for *identity* following the schema rule."""
    kind = normalize_object_type(object_type)
    if normalize_tag(command_tag) in SCHEMA_TAGS or kind == ObjectType.SCHEMA.value:
        return identity

    if schema_hint and schema_hint.strip():
        return schema_hint.strip()

    parts = _segments(identity)
    qualified = len(parts) == 2 or (len(parts) > 2 and kind in ROUTINE_TYPES)
    if qualified and parts[0]:
        return parts[0]

    return default_schema


def resolve_identity(
    identity: str,
    object_kind: str,
    schema_hint: str | None = None,
    *,
    command_tag: str = "",
    default_schema: str = DEFAULT_SCHEMA,
) -> ObjectKey:
    """Resolve a raw identity into its canonical :class:`ObjectKey`.

    Raises
    ------
    pydantic.ValidationError
        Only when the resolved name is empty (blank identity string).
    """
    object_type = normalize_object_type(object_kind)
    return ObjectKey(
        schema_name=resolve_schema(
            identity,
            object_type,
            schema_hint,
            command_tag=command_tag,
            default_schema=default_schema,
        ),
        object_name=resolve_object_name(identity, object_type),
        object_type=object_type,
    )
