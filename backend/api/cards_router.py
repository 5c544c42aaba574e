"""API routes for card CRUD."""

import logging

from fastapi import APIRouter, Depends

from backend.api.deps import card_response, get_context
from backend.api.schemas import (
    CardCreateRequest,
    CardDeleteResponse,
    CardResponse,
    CardUpdateRequest,
)
from backend.context import AppContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cards", tags=["cards"])


@router.get("", response_model=list[CardResponse])
async def list_cards(
    category: str | None = None,
    q: str | None = None,
    ctx: AppContext = Depends(get_context),
) -> list[CardResponse]:
    """List visible cards, optionally filtered by category and search text."""
    cards = await ctx.library.list_cards(category=category, search=q)
    return [card_response(card) for card in cards]


@router.post("", response_model=CardResponse, status_code=201)
async def create_card(
    request: CardCreateRequest,
    ctx: AppContext = Depends(get_context),
) -> CardResponse:
    card = await ctx.library.create_card(
        question=request.question,
        answer=request.answer,
        category=request.category,
        question_image=request.question_image,
        answer_image=request.answer_image,
    )
    return card_response(card)


@router.get("/{card_id}", response_model=CardResponse)
async def get_card(card_id: str, ctx: AppContext = Depends(get_context)) -> CardResponse:
    return card_response(await ctx.library.get_card(card_id))


@router.patch("/{card_id}", response_model=CardResponse)
async def update_card(
    card_id: str,
    request: CardUpdateRequest,
    ctx: AppContext = Depends(get_context),
) -> CardResponse:
    card = await ctx.library.edit_card(
        card_id,
        question=request.question,
        answer=request.answer,
        category=request.category,
    )
    return card_response(card)


@router.delete("/{card_id}", response_model=CardDeleteResponse)
async def delete_card(card_id: str, ctx: AppContext = Depends(get_context)) -> CardDeleteResponse:
    removed = await ctx.library.delete_card(card_id)
    return CardDeleteResponse(id=card_id, removed_locally=removed)
