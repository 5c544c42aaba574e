"""Application context: wires the local store, library and optional sync engine.

The sync engine only exists between sign-in and sign-out. Everything else
works without it, so callers never need to check whether sync is available.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.config import settings
from backend.database import async_session
from backend.errors import SyncError
from backend.srs.library import Library
from backend.store import LocalStore
from backend.sync.auth import AuthClient, SyncSession
from backend.sync.dirty import DirtyTracker
from backend.sync.engine import SyncEngine
from backend.sync.events import SyncEvents, SyncStatus
from backend.sync.realtime import RealtimeChannel
from backend.sync.remote import PostgrestRemote, RemoteStore

logger = logging.getLogger(__name__)

RemoteFactory = Callable[[SyncSession], RemoteStore]


def default_remote_factory(session: SyncSession) -> RemoteStore:
    return PostgrestRemote(access_token=session.access_token)


class AppContext:
    """Holds the shared objects for one running app (API process or CLI run)."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession] = async_session,
        auth: AuthClient | None = None,
        remote_factory: RemoteFactory = default_remote_factory,
        realtime: RealtimeChannel | None = None,
        debounce_seconds: float = settings.sync_debounce_seconds,
    ) -> None:
        self.store = LocalStore(sessionmaker)
        self.tracker = DirtyTracker(self.store, delay=debounce_seconds)
        self.library = Library(self.store, self.tracker)
        self.events = SyncEvents()
        self.auth = auth or AuthClient()
        self.remote_factory = remote_factory
        self.realtime = realtime
        self.engine: SyncEngine | None = None

    @property
    def sync_status(self) -> SyncStatus:
        return self.engine.status if self.engine is not None else SyncStatus.OFFLINE

    async def sign_in(self, email: str, password: str) -> SyncSession:
        session = await self.auth.sign_in(email, password)
        await self.attach_session(session)
        return session

    async def sign_up(self, email: str, password: str) -> SyncSession | None:
        session = await self.auth.sign_up(email, password)
        if session is not None:
            await self.attach_session(session)
        return session

    async def restore(self, access_token: str) -> SyncSession:
        session = await self.auth.restore(access_token)
        await self.attach_session(session)
        return session

    async def attach_session(self, session: SyncSession) -> SyncEngine:
        """Build the sync engine for ``session`` and run the initial sync."""
        if self.engine is not None:
            await self.detach_session()
        self.engine = SyncEngine(
            session=session,
            store=self.store,
            remote=self.remote_factory(session),
            tracker=self.tracker,
            events=self.events,
            realtime=self.realtime,
        )
        await self.engine.start()
        return self.engine

    async def detach_session(self) -> None:
        """Tear the sync engine down without contacting the auth service."""
        engine, self.engine = self.engine, None
        if engine is None:
            return
        engine.close()
        await engine.remote.close()

    async def sign_out(self) -> None:
        engine = self.engine
        await self.detach_session()
        if engine is None:
            return
        try:
            await self.auth.sign_out(engine.session)
        except SyncError as exc:
            logger.warning("Remote sign-out failed: %s", exc)

    async def sync_now(self) -> SyncStatus:
        if self.engine is None:
            return SyncStatus.OFFLINE
        return await self.engine.full_sync()

    async def close(self) -> None:
        self.tracker.cancel()
        await self.detach_session()
