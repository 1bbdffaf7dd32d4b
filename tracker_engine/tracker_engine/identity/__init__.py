"""Object identity resolution."""

from tracker_engine.identity.resolver import (
    DEFAULT_SCHEMA,
    resolve_identity,
    resolve_object_name,
    resolve_schema,
)

__all__ = [
    "DEFAULT_SCHEMA",
    "resolve_identity",
    "resolve_object_name",
    "resolve_schema",
]
