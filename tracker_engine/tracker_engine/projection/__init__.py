"""Read-only projection of tracked objects."""

from tracker_engine.projection.view import ObjectCatalogView, ObjectView, display_name

__all__ = ["ObjectCatalogView", "ObjectView", "display_name"]
