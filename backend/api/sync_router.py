"""API routes for sign-in, sync status and backup files."""

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse

from backend.api.deps import get_context
from backend.api.schemas import ImportResponse, SignInRequest, SyncStatusResponse
from backend.context import AppContext
from backend.errors import SyncError
from backend.transfer import export_data, import_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


def _status(ctx: AppContext) -> SyncStatusResponse:
    engine = ctx.engine
    return SyncStatusResponse(
        status=ctx.sync_status.value,
        signed_in=engine is not None,
        email=engine.session.email if engine is not None else None,
        last_synced_at=engine.last_synced_at if engine is not None else None,
        dirty_pending=ctx.tracker.pending,
    )


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(ctx: AppContext = Depends(get_context)) -> SyncStatusResponse:
    return _status(ctx)


@router.post("/signin", response_model=SyncStatusResponse)
async def sign_in(request: SignInRequest, ctx: AppContext = Depends(get_context)) -> SyncStatusResponse:
    """Sign in and run the initial full sync."""
    try:
        await ctx.sign_in(request.email, request.password)
    except SyncError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return _status(ctx)


@router.post("/signout", response_model=SyncStatusResponse)
async def sign_out(ctx: AppContext = Depends(get_context)) -> SyncStatusResponse:
    await ctx.sign_out()
    return _status(ctx)


@router.post("/run", response_model=SyncStatusResponse)
async def run_sync(ctx: AppContext = Depends(get_context)) -> SyncStatusResponse:
    """Trigger a full sync; a no-op while one is already running."""
    await ctx.sync_now()
    return _status(ctx)


@router.get("/export")
async def export_backup(ctx: AppContext = Depends(get_context)) -> JSONResponse:
    data = await export_data(ctx.store)
    filename = f"memory-app-backup-{date.today().isoformat()}.json"
    return JSONResponse(
        content=data,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import", response_model=ImportResponse)
async def import_backup(
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(get_context),
) -> ImportResponse:
    """Merge a backup file into the local store (put-by-id)."""
    cards, decks = await import_data(ctx.store, payload)
    await ctx.library.ensure_standard_decks()
    return ImportResponse(cards_imported=cards, decks_imported=decks)
