"""Shared fixtures: an in-memory local store and fake remote collaborators."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backend.context import AppContext
from backend.database import init_models
from backend.srs.library import Library
from backend.store import LocalStore
from backend.sync.dirty import DirtyTracker
from backend.sync.engine import SyncEngine
from backend.sync.events import SyncEvents
from tests.fakes import SESSION, FakeRealtime, FakeRemote


@pytest_asyncio.fixture
async def sessionmaker() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_models(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def store(sessionmaker) -> LocalStore:
    return LocalStore(sessionmaker)


@pytest_asyncio.fixture
async def tracker(store) -> AsyncGenerator[DirtyTracker, None]:
    tracker = DirtyTracker(store, delay=0.02)
    yield tracker
    tracker.detach()


@pytest_asyncio.fixture
async def library(store, tracker) -> Library:
    return Library(store, tracker)


@pytest_asyncio.fixture
async def remote() -> FakeRemote:
    return FakeRemote()


@pytest_asyncio.fixture
async def realtime() -> FakeRealtime:
    return FakeRealtime()


@pytest_asyncio.fixture
async def sync_engine(store, remote, tracker, realtime) -> AsyncGenerator[SyncEngine, None]:
    """An engine bound to ``SESSION`` that has not been started yet."""
    engine = SyncEngine(
        session=SESSION,
        store=store,
        remote=remote,
        tracker=tracker,
        events=SyncEvents(),
        realtime=realtime,
    )
    yield engine
    engine.close()


@pytest_asyncio.fixture
async def context(sessionmaker, remote, realtime) -> AsyncGenerator[AppContext, None]:
    ctx = AppContext(
        sessionmaker=sessionmaker,
        remote_factory=lambda session: remote,
        realtime=realtime,
        debounce_seconds=0.02,
    )
    yield ctx
    await ctx.close()
