"""Change event ingestion and host-engine event adapters."""

from tracker_engine.ingest.ddl_bridge import DDLEventBridge
from tracker_engine.ingest.ingestor import ChangeEventIngestor, ChangeHandler, plan_change, plan_drop
from tracker_engine.ingest.pg_events import (
    change_event_from_row,
    dispatch_ddl_commands,
    dispatch_dropped_objects,
    drop_event_from_row,
)

__all__ = [
    "ChangeEventIngestor",
    "ChangeHandler",
    "DDLEventBridge",
    "change_event_from_row",
    "dispatch_ddl_commands",
    "dispatch_dropped_objects",
    "drop_event_from_row",
    "plan_change",
    "plan_drop",
]
