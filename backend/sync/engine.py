"""Offline-first sync engine.

Coordinates pull (remote -> local merge), push (dirty local -> remote) and
realtime change application for one signed-in user.

Conflict policy is last-write-wins on ``updated_at``: the replica with the
strictly later stamp replaces the other wholesale. There is no field-level
merge, so concurrent edits to different fields of the same record lose the
older side entirely.

State machine:
    OFFLINE --start()/set_online(True)--> SYNCING --ok--> SYNCED
                                                  --fail--> ERROR
    any --close()/set_online(False)--> OFFLINE
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from backend.config import utc_iso
from backend.errors import PersistenceError, SyncError
from backend.models import Card, Deck
from backend.store import LocalStore, snapshot_of
from backend.sync.auth import SyncSession
from backend.sync.dirty import DirtyTracker
from backend.sync.events import SyncEventKind, SyncEvents, SyncStatus
from backend.sync.realtime import ChangeEvent, RealtimeChannel, Subscription
from backend.sync.remote import RemoteStore
from backend.sync.rows import (
    CARDS_TABLE,
    DECKS_TABLE,
    card_fields_from_row,
    card_to_row,
    deck_fields_from_row,
    deck_to_row,
    remote_is_newer,
    row_id,
)

logger = logging.getLogger(__name__)

TABLE_MODELS: dict[str, type[Card] | type[Deck]] = {CARDS_TABLE: Card, DECKS_TABLE: Deck}


@dataclass
class PushResult:
    """Outcome of one push pass."""

    cards_pushed: int = 0
    decks_pushed: int = 0
    failed_tables: list[str] | None = None

    @property
    def ok(self) -> bool:
        return not self.failed_tables


class SyncEngine:
    """Sync context for one authenticated session.

    Constructed after sign-in and closed on sign-out. While open it owns the
    dirty tracker's push target, the realtime subscription and status
    reporting.
    """

    def __init__(
        self,
        session: SyncSession,
        store: LocalStore,
        remote: RemoteStore,
        tracker: DirtyTracker,
        events: SyncEvents | None = None,
        realtime: RealtimeChannel | None = None,
    ) -> None:
        self.session = session
        self.store = store
        self.remote = remote
        self.tracker = tracker
        self.events = events or SyncEvents()
        self.realtime = realtime
        self.status = SyncStatus.OFFLINE
        self.online = True
        self.last_synced_at: str | None = None
        self._in_flight = False
        self._closed = False
        self._subscription: Subscription | None = None

    @property
    def is_active(self) -> bool:
        """True while signed in and online."""
        return not self._closed and self.online

    @property
    def is_syncing(self) -> bool:
        return self._in_flight

    # --- Lifecycle ---

    async def start(self) -> SyncStatus:
        """Attach to the dirty tracker, run a full sync, then subscribe to realtime."""
        self.tracker.attach(self.push_dirty)
        status = await self.full_sync()
        self.subscribe_realtime()
        return status

    def close(self) -> None:
        """Tear down on sign-out.

        An in-flight sync is left to finish, but it no longer reports status.
        """
        self.unsubscribe_realtime()
        self.tracker.detach()
        self._set_status(SyncStatus.OFFLINE)
        self._closed = True
        logger.info("Sync closed for %s", self.session.email)

    async def set_online(self, online: bool) -> SyncStatus:
        """React to connectivity changes."""
        self.online = online
        if not online:
            self._set_status(SyncStatus.OFFLINE)
            return self.status
        return await self.full_sync()

    # --- Full sync ---

    async def full_sync(self) -> SyncStatus:
        """Pull then push. A call while a sync is already running is a no-op."""
        if not self.is_active:
            return self.status
        if self._in_flight:
            logger.debug("Sync already in flight, skipping")
            return self.status

        self._in_flight = True
        self._set_status(SyncStatus.SYNCING)
        try:
            await self.pull_changes()
            result = await self.push_changes()
        except (SyncError, PersistenceError):
            logger.exception("Full sync failed")
            self._set_status(SyncStatus.ERROR)
        else:
            self._set_status(SyncStatus.SYNCED if result.ok else SyncStatus.ERROR)
        finally:
            self._in_flight = False
        return self.status

    # --- Push ---

    async def push_changes(self) -> PushResult:
        """Upload every dirty card and deck.

        Each table is one batch. A failed batch stays dirty and is retried on
        the next sync; the other table is still attempted. Tombstones the
        remote has accepted are removed from the local store.
        """
        result = PushResult(failed_tables=[])
        if not self.is_active:
            return result

        user_id = self.session.user_id
        cards = await self.store.list_dirty(Card)
        if cards:
            rows = [card_to_row(card, user_id) for card in cards]
            try:
                await self.remote.upsert_rows(CARDS_TABLE, rows)
            except SyncError as exc:
                logger.error("Push cards failed: %s", exc)
                result.failed_tables.append(CARDS_TABLE)
            else:
                result.cards_pushed = await self.store.mark_synced(Card, snapshot_of(cards))
                logger.info("Pushed %d cards", len(rows))

        decks = await self.store.list_dirty(Deck)
        if decks:
            rows = [deck_to_row(deck, user_id) for deck in decks]
            try:
                await self.remote.upsert_rows(DECKS_TABLE, rows)
            except SyncError as exc:
                logger.error("Push decks failed: %s", exc)
                result.failed_tables.append(DECKS_TABLE)
            else:
                result.decks_pushed = await self.store.mark_synced(Deck, snapshot_of(decks))
                logger.info("Pushed %d decks", len(rows))

        await self.store.purge_synced_tombstones(Card)
        await self.store.purge_synced_tombstones(Deck)
        return result

    async def push_dirty(self) -> bool:
        """Push outside a full sync (debounce timer, immediate delete push).

        Returns True only if everything dirty reached the remote.
        """
        if not self.is_active:
            return False
        if self._in_flight:
            # A sync is running; try again after another quiet period.
            self.tracker.schedule()
            return False
        self._in_flight = True
        try:
            result = await self.push_changes()
        except PersistenceError:
            logger.exception("Push failed")
            self._set_status(SyncStatus.ERROR)
            return False
        finally:
            self._in_flight = False
        self._set_status(SyncStatus.SYNCED if result.ok else SyncStatus.ERROR)
        return result.ok

    # --- Pull ---

    async def pull_changes(self) -> bool:
        """Merge every remote row into the local store.

        Raises:
            SyncError: If either table can't be fetched or a row is malformed;
                decks are not pulled when the cards fetch fails.

        Returns:
            True if any local record changed.
        """
        if not self.is_active:
            return False
        user_id = self.session.user_id
        changed = False
        for table in (CARDS_TABLE, DECKS_TABLE):
            rows = await self.remote.fetch_rows(table, user_id)
            for row in rows:
                if await self._merge_row(table, row):
                    changed = True
        if changed:
            self.events.emit(SyncEventKind.DATA_CHANGED)
        return changed

    async def _merge_row(self, table: str, row: dict) -> bool:
        model = TABLE_MODELS[table]
        record_id = row_id(row)
        local = await self.store.get(model, record_id)
        if local is None:
            if row.get("deleted"):
                return False
            await self.store.put(self._record_from_row(table, row))
            return True

        if not remote_is_newer(row.get("updated_at"), local.updated_at):
            return False
        if row.get("deleted"):
            await self.store.delete(model, record_id)
        else:
            await self.store.put(self._record_from_row(table, row, base=local))
        return True

    @staticmethod
    def _record_from_row(table: str, row: dict, base: Card | Deck | None = None) -> Card | Deck:
        """Build the local record for a remote row.

        Fields absent from the wire (image payloads) are kept from ``base``.
        """
        if table == CARDS_TABLE:
            fields = card_fields_from_row(row)
            record = base if base is not None else Card(id=row_id(row))
        else:
            fields = deck_fields_from_row(row)
            record = base if base is not None else Deck(id=row_id(row))
        for name, value in fields.items():
            setattr(record, name, value)
        record.synced = True
        return record

    # --- Realtime ---

    def subscribe_realtime(self) -> None:
        if self.realtime is None or self._closed:
            return
        self.unsubscribe_realtime()
        self._subscription = self.realtime.subscribe(
            [CARDS_TABLE, DECKS_TABLE], self.session.user_id, self.apply_realtime
        )
        logger.info("Subscribed to realtime changes for %s", self.session.email)

    def unsubscribe_realtime(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def apply_realtime(self, table: str, payload: dict) -> None:
        """Apply one change event without a timestamp check.

        Realtime events describe the newest remote state at emission time.
        """
        if self._closed or table not in TABLE_MODELS:
            return
        event = ChangeEvent.from_payload(table, payload)
        logger.debug("Realtime %s on %s", event.event_type, table)
        model = TABLE_MODELS[table]
        try:
            if event.is_removal:
                if event.record_id is None:
                    return
                await self.store.delete(model, event.record_id)
            elif event.is_upsert:
                base = await self.store.get(model, row_id(event.new))
                record = self._record_from_row(table, event.new, base=base)
                record.deleted = False
                await self.store.put(record)
            else:
                return
        except SyncError as exc:
            logger.warning("Dropped malformed realtime %s on %s: %s", event.event_type, table, exc)
            return
        except PersistenceError:
            logger.exception("Failed to apply realtime %s on %s", event.event_type, table)
            return
        self.events.emit(SyncEventKind.DATA_CHANGED)

    # --- Status ---

    def _set_status(self, status: SyncStatus) -> None:
        if self._closed:
            return
        if status == SyncStatus.SYNCED:
            self.last_synced_at = utc_iso()
        if status == self.status:
            return
        self.status = status
        logger.info("Sync status: %s", status.value)
        self.events.emit(SyncEventKind.STATUS_CHANGED, status)
