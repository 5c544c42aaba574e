"""Tests for pull/push merging, realtime events and the sync state machine."""

import asyncio
import json
import logging

import pytest

from backend.models import Card, Deck
from backend.sync.events import SyncEventKind, SyncStatus
from backend.sync.rows import remote_is_newer, timestamp_ms
from tests.fakes import SESSION, card_row, make_card, make_deck

T1 = "2026-01-01T10:00:00.000Z"
T2 = "2026-01-01T10:05:00.000Z"


def collect(sync_engine, kind: SyncEventKind) -> list:
    seen: list = []
    sync_engine.events.subscribe(kind, seen.append)
    return seen


# --- Timestamps ---


def test_timestamp_ms() -> None:
    assert timestamp_ms("1970-01-01T00:00:01.500Z") == 1500
    assert timestamp_ms("1970-01-01T00:00:01.500+00:00") == 1500
    assert timestamp_ms("1970-01-01T00:00:01.500") == 1500
    assert timestamp_ms("") == 0
    assert timestamp_ms("not a date") is None


def test_remote_is_newer_is_strict() -> None:
    assert remote_is_newer(T2, T1)
    assert not remote_is_newer(T1, T2)
    assert not remote_is_newer(T1, T1)
    assert not remote_is_newer("garbage", T1)


# --- Pull ---


@pytest.mark.asyncio
async def test_pull_creates_missing_records_as_synced(sync_engine, store, remote) -> None:
    remote.tables["cards"]["card-1"] = card_row(
        review_history=json.dumps([{"date": "2026-01-01", "quality": 2, "correct": True}])
    )
    remote.tables["decks"]["deck-1"] = {
        "id": "deck-1",
        "user_id": SESSION.user_id,
        "name": "Security",
        "group_name": None,
        "created_at": T1,
        "updated_at": T1,
        "deleted": False,
    }

    changed = await sync_engine.pull_changes()

    assert changed
    card = await store.get(Card, "card-1")
    assert card.synced is True
    assert card.interval == 1
    assert card.review_history == [{"date": "2026-01-01", "quality": 2, "correct": True}]
    deck = await store.get(Deck, "deck-1")
    assert deck.group_name == "Technology"


@pytest.mark.asyncio
async def test_pull_ignores_rows_of_other_users(sync_engine, store, remote) -> None:
    remote.tables["cards"]["foreign"] = card_row("foreign", user_id="someone-else")
    assert not await sync_engine.pull_changes()
    assert await store.get(Card, "foreign") is None


@pytest.mark.asyncio
async def test_pull_remote_newer_wins(sync_engine, store, remote) -> None:
    await store.put(
        make_card(question="device A", updated_at=T1, question_image="data:image/png;base64,AAA")
    )
    remote.tables["cards"]["card-1"] = card_row(question="device B", updated_at=T2)

    await sync_engine.pull_changes()

    card = await store.get(Card, "card-1")
    assert card.question == "device B"
    assert card.updated_at == T2
    assert card.synced is True
    # image payloads never travel, so the local copy survives the merge
    assert card.question_image == "data:image/png;base64,AAA"


@pytest.mark.asyncio
async def test_pull_local_newer_is_kept(sync_engine, store, remote) -> None:
    await store.put(make_card(question="local", updated_at=T2))
    remote.tables["cards"]["card-1"] = card_row(question="remote", updated_at=T1)

    assert not await sync_engine.pull_changes()
    card = await store.get(Card, "card-1")
    assert card.question == "local"
    assert card.synced is False


@pytest.mark.asyncio
async def test_pull_tie_keeps_local(sync_engine, store, remote) -> None:
    await store.put(make_card(question="local", updated_at=T1))
    remote.tables["cards"]["card-1"] = card_row(question="remote", updated_at=T1)

    await sync_engine.pull_changes()
    assert (await store.get(Card, "card-1")).question == "local"


@pytest.mark.asyncio
async def test_pull_unknown_tombstone_never_materializes(sync_engine, store, remote) -> None:
    remote.tables["cards"]["card-1"] = card_row(deleted=True)
    assert not await sync_engine.pull_changes()
    assert await store.get(Card, "card-1") is None


@pytest.mark.asyncio
async def test_pull_newer_tombstone_hard_deletes(sync_engine, store, remote) -> None:
    await store.put(make_card(updated_at=T1, synced=True))
    remote.tables["cards"]["card-1"] = card_row(deleted=True, updated_at=T2)

    await sync_engine.pull_changes()
    assert await store.get(Card, "card-1") is None


@pytest.mark.asyncio
async def test_pull_emits_data_changed(sync_engine, remote) -> None:
    seen = collect(sync_engine, SyncEventKind.DATA_CHANGED)
    remote.tables["cards"]["card-1"] = card_row()
    await sync_engine.pull_changes()
    await sync_engine.pull_changes()
    assert len(seen) == 1


# --- Push ---


@pytest.mark.asyncio
async def test_push_uploads_dirty_records_and_marks_them(sync_engine, store, remote) -> None:
    await store.put(make_card("a"))
    await store.put(make_card("b"))
    await store.put(make_card("clean", synced=True))
    await store.put(make_deck())

    result = await sync_engine.push_changes()

    assert result.ok
    assert result.cards_pushed == 2
    assert result.decks_pushed == 1
    assert set(remote.tables["cards"]) == {"a", "b"}
    assert remote.tables["cards"]["a"]["user_id"] == SESSION.user_id
    assert remote.tables["cards"]["a"]["interval_days"] == 0
    assert "question_image" not in remote.tables["cards"]["a"]
    assert await store.list_dirty(Card) == []
    assert await store.list_dirty(Deck) == []


@pytest.mark.asyncio
async def test_push_is_idempotent(sync_engine, store, remote) -> None:
    await store.put(make_card("a"))
    await sync_engine.push_changes()
    state = json.dumps(remote.tables, sort_keys=True)

    result = await sync_engine.push_changes()

    assert result.cards_pushed == 0
    assert len(remote.upserts) == 1
    assert json.dumps(remote.tables, sort_keys=True) == state


@pytest.mark.asyncio
async def test_record_dirtied_during_push_stays_dirty(sync_engine, store, remote) -> None:
    await store.put(make_card("a"))
    await store.put(make_card("b"))

    async def regrade_b(table, rows):
        if table == "cards":
            await store.update_fields(Card, "b", updated_at=T2, interval=3)

    remote.on_upsert = regrade_b
    result = await sync_engine.push_changes()

    assert result.cards_pushed == 1
    assert (await store.get(Card, "a")).synced is True
    assert (await store.get(Card, "b")).synced is False


@pytest.mark.asyncio
async def test_failed_table_stays_dirty_other_table_pushed(sync_engine, store, remote) -> None:
    await store.put(make_card("a"))
    await store.put(make_deck())
    remote.fail_upsert.add("cards")

    result = await sync_engine.push_changes()

    assert not result.ok
    assert result.failed_tables == ["cards"]
    assert [c.id for c in await store.list_dirty(Card)] == ["a"]
    assert await store.list_dirty(Deck) == []


@pytest.mark.asyncio
async def test_push_purges_acknowledged_tombstones(sync_engine, store, remote) -> None:
    await store.put(make_card("gone", deleted=True))
    await sync_engine.push_changes()

    assert remote.tables["cards"]["gone"]["deleted"] is True
    assert await store.get(Card, "gone") is None


# --- Full sync and status ---


@pytest.mark.asyncio
async def test_full_sync_pulls_then_pushes(sync_engine, store, remote) -> None:
    statuses = collect(sync_engine, SyncEventKind.STATUS_CHANGED)
    remote.tables["cards"]["remote-card"] = card_row("remote-card")
    await store.put(make_card("local-card"))

    status = await sync_engine.full_sync()

    assert status == SyncStatus.SYNCED
    assert statuses == [SyncStatus.SYNCING, SyncStatus.SYNCED]
    assert sync_engine.last_synced_at is not None
    assert set(remote.tables["cards"]) == {"remote-card", "local-card"}
    assert await store.get(Card, "remote-card") is not None


@pytest.mark.asyncio
async def test_full_sync_pull_failure_sets_error(sync_engine, store, remote) -> None:
    await store.put(make_card("a"))
    remote.fail_fetch = True

    status = await sync_engine.full_sync()

    assert status == SyncStatus.ERROR
    assert remote.upserts == []
    assert not sync_engine.is_syncing
    assert (await store.get(Card, "a")).synced is False


@pytest.mark.asyncio
async def test_full_sync_recovers_on_next_trigger(sync_engine, remote) -> None:
    remote.fail_fetch = True
    assert await sync_engine.full_sync() == SyncStatus.ERROR
    remote.fail_fetch = False
    assert await sync_engine.full_sync() == SyncStatus.SYNCED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "row",
    [
        card_row("c1", review_history="not json"),
        card_row("c1", review_history='{"date": "2026-01-01"}'),
        {k: v for k, v in card_row("c1").items() if k != "id"},
    ],
)
async def test_full_sync_malformed_row_sets_error(sync_engine, store, remote, row) -> None:
    await store.put(make_card("a"))
    remote.tables["cards"]["c1"] = row

    status = await sync_engine.full_sync()

    assert status == SyncStatus.ERROR
    assert not sync_engine.is_syncing
    assert await store.get(Card, "c1") is None
    assert remote.upserts == []
    assert (await store.get(Card, "a")).synced is False


@pytest.mark.asyncio
async def test_full_sync_is_not_reentrant(sync_engine, remote) -> None:
    release = asyncio.Event()
    original = remote.fetch_rows

    async def slow_fetch(table, user_id):
        await release.wait()
        return await original(table, user_id)

    remote.fetch_rows = slow_fetch
    first = asyncio.create_task(sync_engine.full_sync())
    await asyncio.sleep(0)
    assert sync_engine.is_syncing

    assert await sync_engine.full_sync() == SyncStatus.SYNCING

    release.set()
    assert await first == SyncStatus.SYNCED
    assert remote.fetches == 2  # one pull of each table, no second cycle


@pytest.mark.asyncio
async def test_set_online_transitions(sync_engine) -> None:
    assert await sync_engine.set_online(False) == SyncStatus.OFFLINE
    assert await sync_engine.full_sync() == SyncStatus.OFFLINE
    assert await sync_engine.set_online(True) == SyncStatus.SYNCED


@pytest.mark.asyncio
async def test_close_reports_offline_then_goes_silent(sync_engine) -> None:
    statuses = collect(sync_engine, SyncEventKind.STATUS_CHANGED)
    await sync_engine.full_sync()
    sync_engine.close()

    assert statuses[-1] == SyncStatus.OFFLINE
    assert await sync_engine.full_sync() == SyncStatus.OFFLINE
    assert statuses[-1] == SyncStatus.OFFLINE
    assert not sync_engine.is_active


@pytest.mark.asyncio
async def test_start_attaches_tracker_and_subscribes(sync_engine, tracker, realtime) -> None:
    assert await sync_engine.start() == SyncStatus.SYNCED
    assert tracker.has_target
    assert realtime.handler is not None
    assert realtime.tables == ["cards", "decks"]
    assert realtime.user_id == SESSION.user_id

    sync_engine.close()
    assert not tracker.has_target
    assert realtime.handler is None


# --- Debounced push ---


@pytest.mark.asyncio
async def test_mark_dirty_bursts_coalesce_into_one_push(sync_engine, tracker, store, remote) -> None:
    await sync_engine.start()
    tracker.delay = 0.3
    for i in range(5):
        await tracker.mark_dirty(make_card(f"card-{i}"))
    assert tracker.pending

    await asyncio.sleep(0.6)
    await tracker.wait_idle()

    card_pushes = [rows for table, rows in remote.upserts if table == "cards"]
    assert len(card_pushes) == 1
    assert len(card_pushes[0]) == 5
    assert await store.list_dirty(Card) == []


@pytest.mark.asyncio
async def test_debounced_push_during_full_sync_is_rescheduled(sync_engine, tracker) -> None:
    sync_engine.tracker.attach(sync_engine.push_dirty)
    sync_engine._in_flight = True
    assert await sync_engine.push_dirty() is False
    assert tracker.pending
    sync_engine._in_flight = False


@pytest.mark.asyncio
async def test_debounced_push_failure_is_logged(tracker, caplog) -> None:
    async def broken_push() -> bool:
        raise RuntimeError("push exploded")

    tracker.attach(broken_push)
    with caplog.at_level(logging.ERROR, logger="backend.sync.dirty"):
        await tracker.mark_dirty(make_card())
        await asyncio.sleep(0.1)

    assert not tracker.pending
    assert "Debounced push failed" in caplog.text
    assert "push exploded" in caplog.text


@pytest.mark.asyncio
async def test_mark_dirty_without_engine_only_flags(tracker, store) -> None:
    card = await tracker.mark_dirty(make_card(synced=True))
    assert not tracker.pending
    assert card.synced is False
    assert card.updated_at != "2026-01-01T00:00:00.000Z"
    assert await tracker.flush() is None


# --- Realtime ---


@pytest.mark.asyncio
async def test_realtime_insert_applies_without_timestamp_check(sync_engine, store, realtime) -> None:
    await sync_engine.start()
    seen = collect(sync_engine, SyncEventKind.DATA_CHANGED)
    await store.put(make_card(question="local", updated_at=T2))

    await realtime.send(
        "cards", {"eventType": "UPDATE", "new": card_row(question="pushed", updated_at=T1)}
    )

    card = await store.get(Card, "card-1")
    assert card.question == "pushed"
    assert card.synced is True
    assert seen == [None]


@pytest.mark.asyncio
async def test_realtime_delete_and_tombstone_remove_locally(sync_engine, store, realtime) -> None:
    await sync_engine.start()
    await store.put(make_card("a", synced=True))
    await store.put(make_card("b", synced=True))

    await realtime.send("cards", {"eventType": "DELETE", "old": {"id": "a"}})
    await realtime.send("cards", {"eventType": "UPDATE", "new": card_row("b", deleted=True)})

    assert await store.get(Card, "a") is None
    assert await store.get(Card, "b") is None


@pytest.mark.asyncio
async def test_realtime_ignored_after_close(sync_engine, store) -> None:
    handler = sync_engine.apply_realtime
    sync_engine.close()
    await handler("cards", {"eventType": "INSERT", "new": card_row()})
    assert await store.get(Card, "card-1") is None


@pytest.mark.asyncio
async def test_realtime_malformed_upsert_is_dropped(sync_engine, store, realtime) -> None:
    await sync_engine.start()
    seen = collect(sync_engine, SyncEventKind.DATA_CHANGED)
    missing_id = {k: v for k, v in card_row("c3").items() if k != "id"}

    await realtime.send("cards", {"eventType": "INSERT", "new": card_row("c2", review_history="{bad")})
    await realtime.send("cards", {"eventType": "UPDATE", "new": missing_id})

    assert await store.get(Card, "c2") is None
    assert await store.list_all(Card, include_deleted=True) == []
    assert seen == []

    await realtime.send("cards", {"eventType": "INSERT", "new": card_row("c4")})
    assert await store.get(Card, "c4") is not None
