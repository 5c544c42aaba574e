"""Sync status and the observer interface for status/data-change notifications."""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    OFFLINE = "offline"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


class SyncEventKind(str, Enum):
    STATUS_CHANGED = "status_changed"  # payload: SyncStatus
    DATA_CHANGED = "data_changed"  # payload: None; local data changed from a remote source


Handler = Callable[[Any], None]


class SyncEvents:
    """Fixed-kind publish/subscribe hub.

    Handlers are plain callables invoked synchronously in subscription order.
    A failing handler is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[SyncEventKind, list[Handler]] = {kind: [] for kind in SyncEventKind}

    def subscribe(self, kind: SyncEventKind, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``kind``; returns a callable that unsubscribes it."""
        self._handlers[kind].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[kind]:
                self._handlers[kind].remove(handler)

        return unsubscribe

    def emit(self, kind: SyncEventKind, payload: Any = None) -> None:
        for handler in list(self._handlers[kind]):
            try:
                handler(payload)
            except Exception:
                logger.exception("Sync %s handler failed", kind.value)
