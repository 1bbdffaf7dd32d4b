"""Catalog enumeration, reconciliation, and snapshot polling."""

from tracker_engine.catalog.introspector import (
    CatalogIntrospector,
    InspectorCatalogIntrospector,
    IntrospectionError,
    PostgresCatalogIntrospector,
    classify_relation,
    classify_routine,
    classify_type,
)
from tracker_engine.catalog.poller import CatalogChange, CatalogPoller, PollResult, build_snapshot, diff_snapshots
from tracker_engine.catalog.reconciler import ReconciliationLoader, reconcile

__all__ = [
    "CatalogChange",
    "CatalogIntrospector",
    "CatalogPoller",
    "InspectorCatalogIntrospector",
    "IntrospectionError",
    "PollResult",
    "PostgresCatalogIntrospector",
    "ReconciliationLoader",
    "build_snapshot",
    "classify_relation",
    "classify_routine",
    "classify_type",
    "diff_snapshots",
    "reconcile",
]
