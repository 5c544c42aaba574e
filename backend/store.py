"""Local record store for cards and decks.

A thin key-value layer over the async SQLAlchemy session: put/get/delete by
id, plus the secondary lookups the app and the sync engine need (by category,
by due date, by dirty flag). Every SQLAlchemy failure is re-raised as
``PersistenceError``.
"""

import logging
from collections.abc import Iterable, Sequence
from typing import Any, TypeVar

from sqlalchemy import and_, delete, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.errors import PersistenceError
from backend.models import Card, Deck
from backend.models.base import Base

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", Card, Deck)


class LocalStore:
    """Durable local replica of the user's cards and decks."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def get(self, model: type[RecordT], record_id: str) -> RecordT | None:
        """Return the record with ``record_id``, tombstones included."""
        try:
            async with self._sessionmaker() as db:
                return await db.get(model, record_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load {model.__tablename__} {record_id}") from exc

    async def put(self, record: RecordT) -> RecordT:
        """Insert or fully replace the record with the same id."""
        try:
            async with self._sessionmaker() as db:
                merged = await db.merge(record)
                await db.commit()
                return merged
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to save {record.__tablename__} {record.id}") from exc

    async def put_many(self, records: Iterable[Base]) -> int:
        """Put every record in a single transaction; all or nothing."""
        count = 0
        try:
            async with self._sessionmaker() as db, db.begin():
                for record in records:
                    await db.merge(record)
                    count += 1
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to save records") from exc
        return count

    async def update_fields(self, model: type[RecordT], record_id: str, **fields: Any) -> bool:
        """Update selected columns of one record. Returns False if it doesn't exist."""
        stmt = update(model).where(model.id == record_id).values(**fields)
        try:
            async with self._sessionmaker() as db:
                result = await db.execute(stmt)
                await db.commit()
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update {model.__tablename__} {record_id}") from exc

    async def delete(self, model: type[RecordT], record_id: str) -> bool:
        """Hard-delete a record. Returns False if nothing was removed."""
        try:
            async with self._sessionmaker() as db:
                result = await db.execute(delete(model).where(model.id == record_id))
                await db.commit()
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete {model.__tablename__} {record_id}") from exc

    async def list_all(self, model: type[RecordT], include_deleted: bool = False) -> list[RecordT]:
        """Return records in storage order; tombstones only when asked for."""
        stmt = select(model)
        if not include_deleted:
            stmt = stmt.where(model.deleted.is_(False))
        return await self._scalars(stmt.order_by(model.created_at.asc(), model.id.asc()))

    async def list_dirty(self, model: type[RecordT]) -> list[RecordT]:
        """Return every record (tombstones included) with ``synced=False``."""
        return await self._scalars(select(model).where(model.synced.is_(False)))

    async def mark_synced(self, model: type[RecordT], snapshot: dict[str, str]) -> int:
        """Set ``synced=True`` for pushed records that haven't changed since.

        Args:
            model: Card or Deck.
            snapshot: Pushed id -> the ``updated_at`` value that was uploaded.

        Returns:
            How many records were marked. A record whose ``updated_at`` moved
            while the push was in flight stays dirty.
        """
        marked = 0
        try:
            async with self._sessionmaker() as db:
                for record_id, updated_at in snapshot.items():
                    stmt = (
                        update(model)
                        .where(and_(model.id == record_id, model.updated_at == updated_at))
                        .values(synced=True)
                    )
                    result = await db.execute(stmt)
                    marked += result.rowcount
                await db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to mark {model.__tablename__} synced") from exc
        return marked

    async def purge_synced_tombstones(self, model: type[RecordT]) -> list[str]:
        """Hard-delete tombstones whose deletion the remote has acknowledged."""
        condition = and_(model.deleted.is_(True), model.synced.is_(True))
        try:
            async with self._sessionmaker() as db:
                ids = list((await db.execute(select(model.id).where(condition))).scalars().all())
                if ids:
                    await db.execute(delete(model).where(model.id.in_(ids)))
                    await db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to purge {model.__tablename__} tombstones") from exc
        if ids:
            logger.info("Purged %d acknowledged %s tombstones", len(ids), model.__tablename__)
        return ids

    async def ping(self) -> None:
        """Round-trip a trivial query to check the database is reachable."""
        try:
            async with self._sessionmaker() as db:
                await db.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise PersistenceError("Local store is unreachable") from exc

    # --- Card lookups ---

    async def due_cards(self, now: str) -> list[Card]:
        """Return visible cards whose ``next_review`` is at or before ``now``.

        Both date-only and full local timestamps sort correctly as strings,
        so a plain range comparison covers minute and day scheduling.
        """
        stmt = (
            select(Card)
            .where(and_(Card.deleted.is_(False), Card.next_review <= now))
            .order_by(Card.created_at.asc(), Card.id.asc())
        )
        return await self._scalars(stmt)

    async def cards_in_category(self, category: str) -> list[Card]:
        stmt = select(Card).where(and_(Card.deleted.is_(False), Card.category == category))
        return await self._scalars(stmt)

    async def deck_by_name(self, name: str) -> Deck | None:
        stmt = select(Deck).where(and_(Deck.deleted.is_(False), Deck.name == name)).limit(1)
        found = await self._scalars(stmt)
        return found[0] if found else None

    async def _scalars(self, stmt: Any) -> list[Any]:
        try:
            async with self._sessionmaker() as db:
                result = await db.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to query the local store") from exc


def snapshot_of(records: Sequence[Card] | Sequence[Deck]) -> dict[str, str]:
    """Map record ids to their current ``updated_at`` (input for ``mark_synced``)."""
    return {record.id: record.updated_at for record in records}
