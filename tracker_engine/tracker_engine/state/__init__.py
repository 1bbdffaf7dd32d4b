"""State persistence layer for tracked objects."""

from tracker_engine.state.database import (
    engine_from_settings,
    get_engine,
    get_session,
    get_session_factory,
    set_tracker_search_path,
)
from tracker_engine.state.repository import TrackedObjectRepository
from tracker_engine.state.tables import Base, TrackedObjectTable

__all__ = [
    "Base",
    "TrackedObjectRepository",
    "TrackedObjectTable",
    "engine_from_settings",
    "get_engine",
    "get_session",
    "get_session_factory",
    "set_tracker_search_path",
]
