from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, SyncMixin


class Deck(Base, SyncMixin):
    __tablename__ = "decks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    group_name: Mapped[str | None] = mapped_column(String(50), nullable=True)  # Technology, Management, ...
