"""API routes for reviewing due cards."""

import logging

from fastapi import APIRouter, Depends

from backend.api.deps import card_response, get_context
from backend.api.schemas import (
    DueResponse,
    GradeOption,
    GradeRequest,
    GradeResponse,
    PreviewResponse,
)
from backend.context import AppContext
from backend.srs.review import get_due
from backend.srs.sm2 import format_interval_label

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/review", tags=["review"])


@router.get("/due", response_model=DueResponse)
async def due_cards(ctx: AppContext = Depends(get_context)) -> DueResponse:
    """Cards due right now, in storage order (clients shuffle for a session)."""
    cards = await get_due(ctx.store)
    return DueResponse(total=len(cards), cards=[card_response(card) for card in cards])


@router.get("/{card_id}/preview", response_model=PreviewResponse)
async def preview_grades(card_id: str, ctx: AppContext = Depends(get_context)) -> PreviewResponse:
    """Interval each grade button would produce, without committing anything."""
    card = await ctx.library.get_card(card_id)
    options = [
        GradeOption(
            grade=int(p.grade),
            name=p.grade.name,
            interval=p.result.interval,
            is_minutes=p.result.is_minutes,
            label=p.label,
        )
        for p in ctx.library.preview(card)
    ]
    return PreviewResponse(card_id=card_id, options=options)


@router.post("/{card_id}/grade", response_model=GradeResponse)
async def grade_card(
    card_id: str,
    request: GradeRequest,
    ctx: AppContext = Depends(get_context),
) -> GradeResponse:
    card, result = await ctx.library.grade_card(card_id, request.grade)
    return GradeResponse(
        card=card_response(card),
        interval=result.interval,
        is_minutes=result.is_minutes,
        interval_label=format_interval_label(result.interval, result.is_minutes),
    )
