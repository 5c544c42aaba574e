"""Flashcard model with SM-2 scheduling state."""

from sqlalchemy import JSON, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.config import settings
from backend.models.base import Base, SyncMixin


class Card(Base, SyncMixin):
    """A user-created flashcard.

    ``interval`` is minutes while the card is in a learning step and days once
    it has graduated; the unit is implied by the scheduler branch that wrote it.
    """

    __tablename__ = "cards"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    question: Mapped[str] = mapped_column(Text, nullable=False, default="")
    answer: Mapped[str] = mapped_column(Text, nullable=False, default="")
    question_image: Mapped[str | None] = mapped_column(Text, nullable=True)  # data URL, local only
    answer_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(
        String(200), nullable=False, default=settings.default_category, index=True
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0-5, display only
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=settings.default_ease_factor)
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repetitions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_review: Mapped[str] = mapped_column(String(32), nullable=False, default="", index=True)
    review_history: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
