"""Mapping between local records and remote rows.

Remote rows use snake_case wire names (``interval_days``, ``group_name``,
``user_id``) and carry ``review_history`` as a JSON string. Image payloads
never leave the device.
"""

import contextlib
import json
from datetime import UTC, datetime, timedelta
from typing import Any

from backend.config import settings, utc_iso
from backend.errors import SyncError
from backend.models import Card, Deck
from backend.srs.decks import classify_deck

CARDS_TABLE = "cards"
DECKS_TABLE = "decks"
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def card_to_row(card: Card, user_id: str) -> dict[str, Any]:
    now = utc_iso()
    return {
        "id": card.id,
        "user_id": user_id,
        "question": card.question or "",
        "answer": card.answer or "",
        "category": card.category or settings.default_category,
        "level": card.level or 0,
        "ease_factor": card.ease_factor or settings.default_ease_factor,
        "interval_days": card.interval or 0,
        "repetitions": card.repetitions or 0,
        "next_review": card.next_review or None,
        "review_history": json.dumps(card.review_history or []),
        "created_at": card.created_at or now,
        "updated_at": card.updated_at or now,
        "deleted": bool(card.deleted),
    }


def deck_to_row(deck: Deck, user_id: str) -> dict[str, Any]:
    now = utc_iso()
    return {
        "id": deck.id,
        "user_id": user_id,
        "name": deck.name,
        "group_name": deck.group_name or None,
        "created_at": deck.created_at or now,
        "updated_at": deck.updated_at or now,
        "deleted": bool(deck.deleted),
    }


def row_id(row: dict[str, Any]) -> str:
    """Id of a remote row; rows without one can't be merged."""
    record_id = row.get("id")
    if not record_id:
        raise SyncError(f"Remote row has no id: {row!r}")
    return str(record_id)


def card_fields_from_row(row: dict[str, Any]) -> dict[str, Any]:
    """Local card columns carried by a remote row (images excluded).

    Raises:
        SyncError: If ``review_history`` is not a JSON list.
    """
    history = row.get("review_history") or []
    if isinstance(history, str):
        try:
            history = json.loads(history)
        except ValueError as exc:
            raise SyncError(f"Card {row.get('id')!r} has malformed review_history") from exc
    if not isinstance(history, list):
        raise SyncError(f"Card {row.get('id')!r} has malformed review_history")
    return {
        "question": row.get("question") or "",
        "answer": row.get("answer") or "",
        "category": row.get("category") or settings.default_category,
        "level": row.get("level") or 0,
        "ease_factor": row.get("ease_factor") or settings.default_ease_factor,
        "interval": row.get("interval_days") or 0,
        "repetitions": row.get("repetitions") or 0,
        "next_review": row.get("next_review") or "",
        "review_history": history,
        "created_at": row.get("created_at") or utc_iso(),
        "updated_at": row.get("updated_at") or utc_iso(),
        "deleted": bool(row.get("deleted")),
    }


def deck_fields_from_row(row: dict[str, Any]) -> dict[str, Any]:
    name = row.get("name") or ""
    return {
        "name": name,
        "group_name": row.get("group_name") or classify_deck(name),
        "created_at": row.get("created_at") or utc_iso(),
        "updated_at": row.get("updated_at") or utc_iso(),
        "deleted": bool(row.get("deleted")),
    }


def timestamp_ms(value: str | None) -> int | None:
    """Millisecond epoch of an ISO-8601 timestamp; 0 for empty, None if unparseable.

    Naive timestamps are read as UTC.
    """
    if not value:
        return 0
    with contextlib.suppress(ValueError):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return (parsed - EPOCH) // timedelta(milliseconds=1)
    return None


def remote_is_newer(remote_updated_at: str | None, local_updated_at: str | None) -> bool:
    """Last-write-wins test: True only if the remote stamp is strictly later.

    Ties and unparseable stamps keep the local record.
    """
    remote_ms = timestamp_ms(remote_updated_at)
    local_ms = timestamp_ms(local_updated_at)
    if remote_ms is None or local_ms is None:
        return False
    return remote_ms > local_ms
