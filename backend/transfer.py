"""JSON export/import of the local library.

The file format is ``{"cards": [...], "decks": [...], "exportDate": ...}``
with camelCase record keys. Import is a put-by-id merge: matching ids are
overwritten, new ids are added, nothing is removed. Records written before
sync existed get default ``updatedAt``/``synced``/``deleted`` values.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from backend.config import settings, utc_iso
from backend.errors import ValidationError
from backend.models import Card, Deck
from backend.srs.decks import classify_deck
from backend.store import LocalStore

logger = logging.getLogger(__name__)


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    created_at: str | None = None
    updated_at: str | None = None
    synced: bool = False
    deleted: bool = False

    def lifecycle_fields(self) -> dict[str, Any]:
        """Timestamps and flags, defaulted for legacy records."""
        created_at = self.created_at or utc_iso()
        return {
            "created_at": created_at,
            "updated_at": self.updated_at or created_at,
            "synced": self.synced,
            "deleted": self.deleted,
        }


class CardRecord(_Record):
    question: str = ""
    answer: str = ""
    question_image: str | None = None
    answer_image: str | None = None
    category: str = settings.default_category
    level: int = 0
    ease_factor: float = settings.default_ease_factor
    interval: int = 0
    repetitions: int = 0
    next_review: str = ""
    review_history: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_model(cls, card: Card) -> CardRecord:
        return cls(
            id=card.id,
            question=card.question,
            answer=card.answer,
            question_image=card.question_image,
            answer_image=card.answer_image,
            category=card.category,
            level=card.level,
            ease_factor=card.ease_factor,
            interval=card.interval,
            repetitions=card.repetitions,
            next_review=card.next_review,
            review_history=card.review_history or [],
            created_at=card.created_at,
            updated_at=card.updated_at,
            synced=card.synced,
            deleted=card.deleted,
        )

    def to_model(self) -> Card:
        return Card(
            id=self.id,
            question=self.question,
            answer=self.answer,
            question_image=self.question_image,
            answer_image=self.answer_image,
            category=self.category or settings.default_category,
            level=self.level,
            ease_factor=self.ease_factor or settings.default_ease_factor,
            interval=self.interval,
            repetitions=self.repetitions,
            next_review=self.next_review,
            review_history=self.review_history,
            **self.lifecycle_fields(),
        )


class DeckRecord(_Record):
    name: str
    group: str | None = None

    @classmethod
    def from_model(cls, deck: Deck) -> DeckRecord:
        return cls(
            id=deck.id,
            name=deck.name,
            group=deck.group_name,
            created_at=deck.created_at,
            updated_at=deck.updated_at,
            synced=deck.synced,
            deleted=deck.deleted,
        )

    def to_model(self) -> Deck:
        return Deck(
            id=self.id,
            name=self.name,
            group_name=self.group or classify_deck(self.name),
            **self.lifecycle_fields(),
        )


class ExportFile(BaseModel):
    cards: list[CardRecord]
    decks: list[DeckRecord]
    export_date: str | None = Field(default=None, alias="exportDate")

    model_config = ConfigDict(populate_by_name=True)


async def export_data(store: LocalStore) -> dict[str, Any]:
    """Snapshot every local record, tombstones included."""
    cards = await store.list_all(Card, include_deleted=True)
    decks = await store.list_all(Deck, include_deleted=True)
    export = ExportFile(
        cards=[CardRecord.from_model(c) for c in cards],
        decks=[DeckRecord.from_model(d) for d in decks],
        export_date=utc_iso(),
    )
    logger.info("Exported %d cards and %d decks", len(cards), len(decks))
    return export.model_dump(by_alias=True)


def export_json(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def parse_import(raw: str | bytes | dict[str, Any]) -> ExportFile:
    """Validate an export file.

    Raises:
        ValidationError: Not JSON, or missing the ``cards``/``decks`` lists.
    """
    try:
        if isinstance(raw, dict):
            return ExportFile.model_validate(raw)
        return ExportFile.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid backup file: {exc.error_count()} problem(s) found") from exc


async def import_data(store: LocalStore, raw: str | bytes | dict[str, Any]) -> tuple[int, int]:
    """Merge an export file into the local store in one transaction.

    Returns:
        (cards imported, decks imported)
    """
    data = parse_import(raw)
    records: list[Card | Deck] = [d.to_model() for d in data.decks]
    records.extend(c.to_model() for c in data.cards)
    await store.put_many(records)
    logger.info("Imported %d cards and %d decks", len(data.cards), len(data.decks))
    return len(data.cards), len(data.decks)
