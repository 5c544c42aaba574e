"""Pydantic schemas for API request/response models."""

from pydantic import BaseModel

# --- Cards ---


class CardCreateRequest(BaseModel):
    """Request to add a card. Either text or an image is required on each side."""

    question: str = ""
    answer: str = ""
    category: str | None = None
    question_image: str | None = None
    answer_image: str | None = None


class CardUpdateRequest(BaseModel):
    question: str | None = None
    answer: str | None = None
    category: str | None = None


class CardResponse(BaseModel):
    id: str
    question: str
    answer: str
    category: str
    has_question_image: bool
    has_answer_image: bool
    level: int
    ease_factor: float
    interval: int
    repetitions: int
    next_review: str
    next_review_label: str
    review_count: int
    updated_at: str
    synced: bool


class CardDeleteResponse(BaseModel):
    id: str
    removed_locally: bool  # False while the tombstone waits for a successful push


# --- Review ---


class GradeOption(BaseModel):
    """Projected outcome of one grade button."""

    grade: int
    name: str  # AGAIN, HARD, GOOD, EASY
    interval: int
    is_minutes: bool
    label: str


class PreviewResponse(BaseModel):
    card_id: str
    options: list[GradeOption]


class GradeRequest(BaseModel):
    grade: int  # 0=Again, 1=Hard, 2=Good, 3=Easy


class GradeResponse(BaseModel):
    card: CardResponse
    interval: int
    is_minutes: bool
    interval_label: str


class DueResponse(BaseModel):
    total: int
    cards: list[CardResponse]


# --- Decks ---


class DeckCreateRequest(BaseModel):
    name: str


class DeckResponse(BaseModel):
    id: str
    name: str
    group_name: str | None
    card_count: int = 0


class DeckDeleteResponse(BaseModel):
    id: str
    cards_deleted: int


# --- Stats ---


class CategoryAccuracyResponse(BaseModel):
    category: str
    correct: int
    total: int
    percent: int


class StatsResponse(BaseModel):
    """Overall statistics for the local library."""

    total_cards: int
    cards_due: int
    cards_mastered: int  # repetitions >= 3
    streak_days: int
    total_reviews: int
    accuracy: list[CategoryAccuracyResponse]
    category_counts: dict[str, int]


# --- Sync ---


class SyncStatusResponse(BaseModel):
    status: str  # offline, syncing, synced, error
    signed_in: bool
    email: str | None = None
    last_synced_at: str | None = None
    dirty_pending: bool = False


class SignInRequest(BaseModel):
    email: str
    password: str


class ImportResponse(BaseModel):
    cards_imported: int
    decks_imported: int
