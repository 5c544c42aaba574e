"""FastAPI application entry point and configuration."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.api.cards_router import router as cards_router
from backend.api.decks_router import router as decks_router
from backend.api.review_router import router as review_router
from backend.api.stats_router import router as stats_router
from backend.api.sync_router import router as sync_router
from backend.config import settings
from backend.context import AppContext
from backend.database import engine, init_models
from backend.errors import NotFoundError, PersistenceError, SyncError, ValidationError


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create tables and the app context on startup; tear down sync on shutdown."""
    if getattr(app.state, "context", None) is None:
        await init_models()
        app.state.context = AppContext()
        await app.state.context.library.ensure_standard_decks()
    yield
    await app.state.context.close()
    await engine.dispose()


def create_app(context: AppContext | None = None) -> FastAPI:
    """Build the API. Pass a prepared context to skip the default database setup."""
    app = FastAPI(
        title=settings.app_name,
        description="Spaced repetition flashcards with offline-first sync",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(cards_router)
    app.include_router(review_router)
    app.include_router(decks_router)
    app.include_router(stats_router)
    app.include_router(sync_router)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(SyncError)
    async def sync_handler(request: Request, exc: SyncError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Check local store connectivity and report sync status."""
        ctx: AppContext = app.state.context
        await ctx.store.ping()
        return {"status": "ok", "sync": ctx.sync_status.value}

    return app


app = create_app()
