"""API routes for dashboard statistics."""

import logging

from fastapi import APIRouter, Depends

from backend.api.deps import get_context
from backend.api.schemas import CategoryAccuracyResponse, StatsResponse
from backend.context import AppContext
from backend.srs.review import compute_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("", response_model=StatsResponse)
async def get_stats(ctx: AppContext = Depends(get_context)) -> StatsResponse:
    """Totals, due count, mastery, study streak and per-category accuracy."""
    stats = await compute_stats(ctx.store)
    return StatsResponse(
        total_cards=stats.total_cards,
        cards_due=stats.cards_due,
        cards_mastered=stats.cards_mastered,
        streak_days=stats.streak_days,
        total_reviews=stats.total_reviews,
        accuracy=[
            CategoryAccuracyResponse(
                category=a.category, correct=a.correct, total=a.total, percent=a.percent
            )
            for a in stats.accuracy
        ],
        category_counts=stats.category_counts,
    )
