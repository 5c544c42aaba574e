"""Shared FastAPI dependencies and response converters."""

from datetime import date

from fastapi import Request

from backend.api.schemas import CardResponse
from backend.context import AppContext
from backend.models.card import Card
from backend.srs.sm2 import format_next_review


def get_context(request: Request) -> AppContext:
    """Return the app-wide context created in the lifespan handler."""
    return request.app.state.context


def card_response(card: Card, today: date | None = None) -> CardResponse:
    return CardResponse(
        id=card.id,
        question=card.question,
        answer=card.answer,
        category=card.category,
        has_question_image=bool(card.question_image),
        has_answer_image=bool(card.answer_image),
        level=card.level,
        ease_factor=card.ease_factor,
        interval=card.interval,
        repetitions=card.repetitions,
        next_review=card.next_review,
        next_review_label=format_next_review(card.next_review, today or date.today()),
        review_count=len(card.review_history or []),
        updated_at=card.updated_at,
        synced=card.synced,
    )
