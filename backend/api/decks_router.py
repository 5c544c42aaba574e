"""API routes for decks."""

from collections import Counter

from fastapi import APIRouter, Depends

from backend.api.deps import get_context
from backend.api.schemas import DeckCreateRequest, DeckDeleteResponse, DeckResponse
from backend.context import AppContext
from backend.models.card import Card
from backend.srs.decks import GROUP_ORDER

router = APIRouter(prefix="/api/decks", tags=["decks"])


@router.get("", response_model=list[DeckResponse])
async def list_decks(ctx: AppContext = Depends(get_context)) -> list[DeckResponse]:
    """Decks ordered by group, then name, with their card counts."""
    decks = await ctx.library.list_decks()
    counts = Counter(card.category for card in await ctx.store.list_all(Card))
    decks.sort(
        key=lambda d: (
            GROUP_ORDER.index(d.group_name) if d.group_name in GROUP_ORDER else len(GROUP_ORDER),
            d.name,
        )
    )
    return [
        DeckResponse(id=d.id, name=d.name, group_name=d.group_name, card_count=counts.get(d.name, 0))
        for d in decks
    ]


@router.post("", response_model=DeckResponse, status_code=201)
async def create_deck(request: DeckCreateRequest, ctx: AppContext = Depends(get_context)) -> DeckResponse:
    deck = await ctx.library.create_deck(request.name)
    return DeckResponse(id=deck.id, name=deck.name, group_name=deck.group_name)


@router.delete("/{deck_id}", response_model=DeckDeleteResponse)
async def delete_deck(deck_id: str, ctx: AppContext = Depends(get_context)) -> DeckDeleteResponse:
    """Delete a deck and every card filed under it."""
    cards_deleted = await ctx.library.delete_deck(deck_id)
    return DeckDeleteResponse(id=deck_id, cards_deleted=cards_deleted)
