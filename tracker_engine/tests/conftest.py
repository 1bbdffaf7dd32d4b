"""Shared fixtures for tracker engine tests.

Every database-backed test runs against a fresh in-memory local store
(``aiosqlite``), so no PostgreSQL instance is needed.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from tracker_engine.state.sqlite_adapter import create_local_tables, get_local_engine

BASE_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


class StepClock:
    """Deterministic clock: every call returns a time one second later."""

    def __init__(self, start: datetime = BASE_TIME, step: timedelta = timedelta(seconds=1)) -> None:
        self._next = start
        self._step = step
        self.calls = 0

    def __call__(self) -> datetime:
        value = self._next
        self._next += self._step
        self.calls += 1
        return value


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory local store with the tracker tables created."""
    engine = get_local_engine(":memory:")
    await create_local_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def async_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide an async session backed by the in-memory database."""
    async with session_factory() as session:
        yield session
