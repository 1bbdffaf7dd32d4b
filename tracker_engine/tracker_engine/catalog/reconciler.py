"""Initial load and reconciliation of the tracked object store.

Event capture only sees changes made while the tracker is installed.  The
reconciliation loader covers everything else: it enumerates the catalog and
inserts a VALID row, tagged ``INITIAL_LOAD``, for each object that is not
already tracked.  Existing rows (including INVALID ones) are never modified,
so running it repeatedly is safe and adds nothing after the first pass.

An administrative ``clear_first`` reset empties the store before loading,
discarding all accumulated history.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import UTC, datetime

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from tracker_engine.catalog.introspector import CatalogIntrospector
from tracker_engine.ingest.ingestor import Clock
from tracker_engine.models.catalog import ReconciliationSummary
from tracker_engine.models.tracked_object import INITIAL_LOAD_OPERATION, ObjectKey, normalize_object_type
from tracker_engine.state.repository import TrackedObjectRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ReconciliationLoader:
    """Populate the store from a catalog introspector.

    Parameters
    ----------
    session:
        Active database session.  The loader flushes but does not commit;
        a failed pass leaves nothing behind once the caller rolls back.
    introspector:
        Source of the objects that currently exist.
    clock:
        Source of "now"; one timestamp is shared by every row of a pass.
    """

    def __init__(
        self,
        session: AsyncSession,
        introspector: CatalogIntrospector,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._repo = TrackedObjectRepository(session)
        self._introspector = introspector
        self._clock = clock or _utcnow

    async def reconcile(self, clear_first: bool = False) -> ReconciliationSummary:
        """Run one reconciliation pass.

        Raises
        ------
        IntrospectionError
            When the catalog cannot be enumerated.  With ``clear_first`` the
            store has already been emptied within the caller's transaction,
            which must then be rolled back.
        """
        summary = ReconciliationSummary(cleared=clear_first)
        if clear_first:
            removed = await self._repo.clear()
            logger.warning("Reconciliation reset discarded %d tracked row(s)", removed)

        objects = await self._introspector.enumerate()
        summary.enumerated = len(objects)
        now = self._clock()
        inserted_by_type: Counter[str] = Counter()

        for obj in objects:
            try:
                key = ObjectKey(
                    schema_name=obj.schema_name,
                    object_name=obj.object_name,
                    object_type=normalize_object_type(obj.object_type),
                )
            except ValidationError as exc:
                logger.warning("Skipping unusable catalog entry %r: %s", obj, exc)
                summary.skipped += 1
                continue

            inserted = await self._repo.insert_if_absent(
                key,
                INITIAL_LOAD_OPERATION,
                native_handle=obj.native_handle,
                now=now,
            )
            if inserted:
                inserted_by_type[key.object_type] += 1
            else:
                summary.skipped += 1

        summary.inserted = sum(inserted_by_type.values())
        summary.by_type = dict(sorted(inserted_by_type.items()))
        logger.info(
            "Reconciliation complete: enumerated=%d inserted=%d skipped=%d cleared=%s",
            summary.enumerated,
            summary.inserted,
            summary.skipped,
            summary.cleared,
        )
        return summary


async def reconcile(
    session: AsyncSession,
    introspector: CatalogIntrospector,
    clear_first: bool = False,
    *,
    clock: Clock | None = None,
) -> ReconciliationSummary:
    """Administrative entry point: one reconciliation pass on *session*."""
    loader = ReconciliationLoader(session, introspector, clock=clock)
    return await loader.reconcile(clear_first=clear_first)
