"""Change event ingestion: apply create/alter/drop events to the store.

The host engine calls into the tracker, never the other way round.  The
:class:`ChangeEventIngestor` is that inbound handler: one ``on_change`` call
per created or altered object, one ``on_drop`` call per dropped object, in
the order the engine reports them.  It runs on the caller's session and
never commits, so a rolled-back DDL statement takes its tracker writes with
it.

Interpretation is split from application.  :func:`plan_change` and
:func:`plan_drop` are pure and decide *what* to write; the ingestor (and the
synchronous DDL bridge) decide *how*.  Malformed or unrecognised events are
logged and skipped rather than raised, so tracking never blocks DDL.
Database errors do propagate: the shared transaction is already unusable at
that point and must roll back as a whole.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from tracker_engine.identity.resolver import DEFAULT_SCHEMA, resolve_identity, resolve_object_name
from tracker_engine.models.events import ChangeEvent, DropEvent
from tracker_engine.models.tracked_object import DropMatch, ObjectKey, normalize_object_type
from tracker_engine.state.repository import TrackedObjectRepository
from tracker_engine.state.tables import TrackedObjectTable

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ChangeHandler(Protocol):
    """Inbound interface the host engine's event adapters deliver to."""

    async def on_change(self, event: ChangeEvent) -> ObjectKey | None: ...

    async def on_drop(self, event: DropEvent) -> list[TrackedObjectTable]: ...


# ---------------------------------------------------------------------------
# Event interpretation
# ---------------------------------------------------------------------------


def plan_change(event: ChangeEvent, *, default_schema: str = DEFAULT_SCHEMA) -> ObjectKey | None:
    """Resolve the canonical key a create/alter event should upsert.

    Returns ``None`` for events the tracker ignores: objects installed as
    part of an extension, and statements outside the recognised tag set.

    Raises
    ------
    pydantic.ValidationError
        When the identity resolves to an empty name.
    """
    if event.in_extension:
        logger.debug("Skipping extension member %s (%s)", event.object_identity, event.command_tag)
        return None
    if not event.is_recognized:
        logger.debug("Ignoring unrecognised change tag %r for %s", event.command_tag, event.object_identity)
        return None
    return resolve_identity(
        event.object_identity,
        event.object_kind,
        event.schema_hint,
        command_tag=event.command_tag,
        default_schema=default_schema,
    )


def plan_drop(event: DropEvent) -> DropMatch | None:
    """Build the best-effort match criteria for a drop event.

    The dropped object can no longer be introspected, so the name is
    recovered from the identity with the same segment rule as the create
    path.  An empty schema or name in the event matches any stored value.
    """
    if not event.is_recognized:
        logger.debug("Ignoring unrecognised drop tag %r for %s", event.command_tag, event.object_identity)
        return None
    object_type = normalize_object_type(event.object_kind)
    name = resolve_object_name(event.object_identity, object_type) if event.object_identity else ""
    schema = (event.schema_name or "").strip()
    return DropMatch(
        schema_name=schema or None,
        object_name=name or None,
        object_type=object_type,
    )


# ---------------------------------------------------------------------------
# Ingestor
# ---------------------------------------------------------------------------


class ChangeEventIngestor:
    """Apply host-engine change events to the tracked object store.

    Parameters
    ----------
    session:
        Active database session; the ingestor flushes but never commits.
    default_schema:
        Schema assumed for unqualified identities that arrive without a
        namespace hint (the session's current schema on the host).
    clock:
        Source of "now" for timestamps.  Defaults to UTC wall-clock time.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        default_schema: str = DEFAULT_SCHEMA,
        clock: Clock | None = None,
    ) -> None:
        self._repo = TrackedObjectRepository(session)
        self._default_schema = default_schema
        self._clock = clock or _utcnow

    async def on_change(self, event: ChangeEvent) -> ObjectKey | None:
        """Upsert the object named by a create/alter event.

        Returns the canonical key written, or ``None`` when the event was
        skipped.
        """
        try:
            key = plan_change(event, default_schema=self._default_schema)
        except ValidationError as exc:
            logger.warning(
                "Could not resolve identity %r (%s): %s",
                event.object_identity,
                event.command_tag,
                exc,
            )
            return None
        if key is None:
            return None
        return await self.track(key, event.command_tag, native_handle=event.native_handle)

    async def track(self, key: ObjectKey, operation: str, *, native_handle: str | None = None) -> ObjectKey:
        """Merge *operation* into the row for an already-resolved *key*.

        Used directly by sources that know the exact key, such as the
        snapshot poller, so no identity string has to be re-parsed.
        """
        await self._repo.upsert(key, operation, native_handle=native_handle, now=self._clock())
        logger.debug("Tracked %s via %s", key, operation)
        return key

    async def on_changes(self, events: Iterable[ChangeEvent]) -> list[ObjectKey]:
        """Apply every event of a (possibly multi-object) statement in order."""
        applied: list[ObjectKey] = []
        for event in events:
            key = await self.on_change(event)
            if key is not None:
                applied.append(key)
        return applied

    async def on_drop(self, event: DropEvent) -> list[TrackedObjectTable]:
        """Invalidate every tracked row matching a drop event.

        Returns the affected rows.  An empty list means the object was never
        tracked; that is not an error.
        """
        match = plan_drop(event)
        if match is None:
            return []
        return await self.invalidate(match, event.command_tag)

    async def invalidate(self, match: DropMatch, operation: str) -> list[TrackedObjectTable]:
        """Flip every row matching *match* to INVALID and return them."""
        rows = await self._repo.mark_invalid(match, operation, now=self._clock())
        if not rows:
            logger.debug("Drop of untracked %s %s.%s ignored", match.object_type, match.schema_name, match.object_name)
        elif len(rows) > 1:
            logger.info(
                "%s matched %d tracked rows for %s (schema=%s)",
                operation,
                len(rows),
                match.object_name or "*",
                match.schema_name or "*",
            )
        return rows

    async def on_drops(self, events: Iterable[DropEvent]) -> list[TrackedObjectTable]:
        """Apply every drop event of a statement in order."""
        affected: list[TrackedObjectTable] = []
        for event in events:
            affected.extend(await self.on_drop(event))
        return affected
