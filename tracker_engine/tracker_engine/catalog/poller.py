"""Snapshot poller: change capture for engines without a native DDL hook.

Each tick enumerates the catalog, diffs the result against the previous
snapshot, and applies the differences through a :class:`ChangeEventIngestor`:

* a key present now but not before is tracked with ``CREATE <kind>``,
* a key present in both whose fingerprint changed gets ``ALTER <kind>``,
* a key present before but not now is invalidated with ``DROP <kind>``.

Differences carry the catalog key itself rather than an identity string,
so a routine such as ``my_sum(app.money)`` or a name containing dots is
written under exactly the key reconciliation seeded.

Polling is strictly weaker than event capture.  Changes are seen up to one
interval late, an object created and dropped between two ticks is never
seen at all, and alterations are only detected for objects the
introspector fingerprints.  The first tick only records a baseline; run a
reconciliation pass beforehand to seed the store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tracker_engine.catalog.introspector import CatalogIntrospector, IntrospectionError
from tracker_engine.ingest.ingestor import ChangeEventIngestor, Clock
from tracker_engine.models.catalog import CatalogObject
from tracker_engine.models.tracked_object import DropMatch, ObjectKey, ObjectType, normalize_object_type
from tracker_engine.state.database import set_tracker_search_path
from tracker_engine.state.tables import TrackedObjectTable

logger = logging.getLogger(__name__)

Snapshot = dict[tuple[str, str, str], CatalogObject]
IntrospectorFactory = Callable[[AsyncSession], CatalogIntrospector]

# Statement noun used to synthesise a tag for each classified kind.
_TAG_NOUNS: dict[str, str] = {
    ObjectType.TABLE.value: "TABLE",
    ObjectType.PARTITION.value: "TABLE",
    ObjectType.PARTITIONED_TABLE.value: "TABLE",
    ObjectType.VIEW.value: "VIEW",
    ObjectType.MATERIALIZED_VIEW.value: "MATERIALIZED VIEW",
    ObjectType.SEQUENCE.value: "SEQUENCE",
    ObjectType.INDEX.value: "INDEX",
    ObjectType.FUNCTION.value: "FUNCTION",
    ObjectType.AGGREGATE.value: "FUNCTION",
    ObjectType.WINDOW.value: "FUNCTION",
    ObjectType.PROCEDURE.value: "PROCEDURE",
    ObjectType.TRIGGER.value: "TRIGGER",
    ObjectType.SCHEMA.value: "SCHEMA",
    ObjectType.TYPE.value: "TYPE",
    ObjectType.ENUM.value: "TYPE",
    ObjectType.RANGE.value: "TYPE",
    ObjectType.PSEUDO_TYPE.value: "TYPE",
    ObjectType.DOMAIN.value: "DOMAIN",
}


def build_snapshot(objects: Iterable[CatalogObject]) -> Snapshot:
    """Index enumerated objects by canonical key."""
    snapshot: Snapshot = {}
    for obj in objects:
        object_type = normalize_object_type(obj.object_type)
        snapshot[(obj.schema_name, obj.object_name, object_type)] = obj
    return snapshot


class CatalogChange(BaseModel):
    """One difference between two snapshots, keyed as the catalog reports it."""

    model_config = ConfigDict(frozen=True)

    key: ObjectKey
    command_tag: str = Field(..., description="Synthesised statement tag, e.g. 'ALTER TABLE'.")
    native_handle: str | None = None


def _change(obj: CatalogObject, object_type: str, tag: str) -> CatalogChange:
    return CatalogChange(
        key=ObjectKey(schema_name=obj.schema_name, object_name=obj.object_name, object_type=object_type),
        command_tag=tag,
        native_handle=obj.native_handle,
    )


def diff_snapshots(
    previous: Mapping[tuple[str, str, str], CatalogObject],
    current: Mapping[tuple[str, str, str], CatalogObject],
) -> tuple[list[CatalogChange], list[CatalogChange]]:
    """Return the ``(changes, drops)`` between two snapshots.

    Kinds with no statement noun (``OTHER``) produce nothing.  Results are
    ordered by key so a tick applies its changes deterministically.
    """
    changes: list[CatalogChange] = []
    drops: list[CatalogChange] = []

    for key in sorted(current):
        obj = current[key]
        noun = _TAG_NOUNS.get(key[2])
        if noun is None:
            continue
        before = previous.get(key)
        if before is None:
            verb = "CREATE"
        elif obj.fingerprint is not None and before.fingerprint is not None and obj.fingerprint != before.fingerprint:
            verb = "ALTER"
        else:
            continue
        changes.append(_change(obj, key[2], f"{verb} {noun}"))

    for key in sorted(set(previous) - set(current)):
        noun = _TAG_NOUNS.get(key[2])
        if noun is None:
            continue
        drops.append(_change(previous[key], key[2], f"DROP {noun}"))

    return changes, drops


class PollResult(BaseModel):
    """Outcome of a single poll tick."""

    baseline: bool = Field(default=False, description="True when the tick only recorded a snapshot.")
    enumerated: int = Field(default=0, ge=0)
    changes: int = Field(default=0, ge=0, description="Change events applied.")
    drops: int = Field(default=0, ge=0, description="Rows invalidated by drop events.")


class CatalogPoller:
    """AsyncIO background task that keeps the store current by polling.

    Parameters
    ----------
    session_factory:
        An ``async_sessionmaker``; each tick runs in its own session and
        commits on success.
    introspector_factory:
        Builds the introspector for a tick's session.
    interval_seconds:
        Delay between ticks, and therefore the staleness bound.
    tracker_schema:
        When given, each tick puts it first on the search path (PostgreSQL).
    clock:
        Source of "now" for timestamps.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        introspector_factory: IntrospectorFactory,
        *,
        interval_seconds: float = 60.0,
        tracker_schema: str | None = None,
        clock: Clock | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._session_factory = session_factory
        self._introspector_factory = introspector_factory
        self._interval = interval_seconds
        self._tracker_schema = tracker_schema
        self._clock = clock
        self._snapshot: Snapshot | None = None
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        """Whether the polling loop is active."""
        return self._running

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def has_baseline(self) -> bool:
        return self._snapshot is not None

    async def start(self) -> None:
        """Start the polling background task."""
        if self._running:
            logger.warning("CatalogPoller already running; ignoring start()")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("CatalogPoller started (interval=%.1fs)", self._interval)

    async def stop(self) -> None:
        """Stop the polling loop gracefully."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("CatalogPoller stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except (OperationalError, InterfaceError, IntrospectionError) as exc:
                logger.error("CatalogPoller tick failed: %s", exc, exc_info=True)
            except Exception as exc:
                logger.critical("CatalogPoller unexpected error: %s", exc, exc_info=True)
                raise
            await asyncio.sleep(self._interval)

    async def poll_once(self) -> PollResult:
        """Run one tick: enumerate, diff against the last snapshot, apply.

        The stored snapshot only advances after the tick's writes commit, so
        a failed tick is retried in full on the next one.
        """
        async with self._session_factory() as session:
            if self._tracker_schema is not None:
                await set_tracker_search_path(session, self._tracker_schema)
            introspector = self._introspector_factory(session)
            current = build_snapshot(await introspector.enumerate())

            if self._snapshot is None:
                self._snapshot = current
                logger.info("CatalogPoller baseline recorded: %d object(s)", len(current))
                return PollResult(baseline=True, enumerated=len(current))

            changes, drops = diff_snapshots(self._snapshot, current)
            ingestor = ChangeEventIngestor(session, clock=self._clock)
            applied = [
                await ingestor.track(change.key, change.command_tag, native_handle=change.native_handle)
                for change in changes
            ]
            invalidated: list[TrackedObjectTable] = []
            for drop in drops:
                match = DropMatch(**drop.key.model_dump())
                invalidated.extend(await ingestor.invalidate(match, drop.command_tag))
            await session.commit()

        self._snapshot = current
        if applied or invalidated:
            logger.info(
                "CatalogPoller applied %d change(s) and invalidated %d row(s)",
                len(applied),
                len(invalidated),
            )
        return PollResult(enumerated=len(current), changes=len(applied), drops=len(invalidated))
