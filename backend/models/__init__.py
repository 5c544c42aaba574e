"""SQLAlchemy ORM models for the local flashcard store."""

from backend.models.base import Base, SyncMixin
from backend.models.card import Card
from backend.models.deck import Deck

__all__ = ["Base", "Card", "Deck", "SyncMixin"]
