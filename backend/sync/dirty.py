"""Dirty tracking and debounced push scheduling.

Every local mutation goes through ``DirtyTracker.mark_dirty``, which stamps
the record, persists it, and re-arms one process-wide timer. When the timer
fires after a quiet period, the attached push target runs once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from backend.config import settings, utc_iso
from backend.models import Card, Deck
from backend.store import LocalStore

logger = logging.getLogger(__name__)

PushTarget = Callable[[], Awaitable[bool]]


class DirtyTracker:
    """Marks records as locally modified and coalesces pushes.

    The push target is optional: without one (signed out, or no remote
    configured) records still get flagged and wait for the next sync.
    """

    def __init__(self, store: LocalStore, delay: float = settings.sync_debounce_seconds) -> None:
        self.store = store
        self.delay = delay
        self._push_target: PushTarget | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None

    @property
    def has_target(self) -> bool:
        return self._push_target is not None

    @property
    def pending(self) -> bool:
        """True while a debounced push is waiting to fire."""
        return self._timer is not None

    def attach(self, push_target: PushTarget) -> None:
        self._push_target = push_target

    def detach(self) -> None:
        self.cancel()
        self._push_target = None

    async def mark_dirty(self, record: Card | Deck) -> Card | Deck:
        """Stamp ``record`` as modified, persist it and schedule a push."""
        record.updated_at = utc_iso()
        record.synced = False
        saved = await self.store.put(record)
        self.schedule()
        return saved

    def schedule(self) -> None:
        """(Re)arm the debounce timer; earlier pending pushes are dropped."""
        if self._push_target is None:
            return
        self.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def flush(self) -> bool | None:
        """Push now instead of waiting for the timer.

        Returns:
            The push outcome, or None when no push target is attached.
        """
        self.cancel()
        if self._push_target is None:
            return None
        return await self._push_target()

    async def wait_idle(self) -> None:
        """Wait for a debounced push that has already started to finish."""
        if self._task is not None and not self._task.done():
            await self._task

    def _fire(self) -> None:
        self._timer = None
        if self._push_target is None:
            return
        logger.debug("Debounce window elapsed, pushing dirty records")
        self._task = asyncio.ensure_future(self._push_target())
        self._task.add_done_callback(_log_push_failure)


def _log_push_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Debounced push failed: %r", exc, exc_info=exc)
