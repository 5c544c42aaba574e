"""Declarative base and the sync bookkeeping columns shared by cards and decks."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from backend.config import utc_iso


class Base(DeclarativeBase):
    pass


class SyncMixin:
    """Lifecycle timestamps plus the dirty/tombstone flags used by the sync engine.

    Timestamps are kept as UTC ISO-8601 strings so they travel to the remote
    replica unchanged and compare the same way on both sides.
    """

    created_at: Mapped[str] = mapped_column(String(32), nullable=False, default=utc_iso)
    updated_at: Mapped[str] = mapped_column(String(32), nullable=False, default=utc_iso, index=True)
    synced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
