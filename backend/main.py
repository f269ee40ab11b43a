"""FastAPI application entry point and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from backend.api.cards_router import router as cards_router
from backend.api.favorites_router import router as favorites_router
from backend.api.phrases_router import router as phrases_router
from backend.api.session_router import router as session_router
from backend.api.stats_router import router as stats_router
from backend.config import settings
from backend.database import async_session, engine, init_db
from backend.srs.errors import InvalidRating, InvalidState, PersistenceFailure

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize logging and the database on startup and cleanup on shutdown."""
    logging.basicConfig(level=settings.log_level.upper())
    await init_db()
    yield
    await engine.dispose()


app = FastAPI(
    title="LegendasPT",
    description="Spaced repetition study of Portuguese TV subtitle phrases",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(session_router)
app.include_router(cards_router)
app.include_router(phrases_router)
app.include_router(favorites_router)
app.include_router(stats_router)


@app.exception_handler(InvalidRating)
async def invalid_rating_handler(request: Request, exc: InvalidRating) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(InvalidState)
async def invalid_state_handler(request: Request, exc: InvalidState) -> JSONResponse:
    logger.warning("Refusing malformed card on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request: Request, exc: PersistenceFailure) -> JSONResponse:
    logger.warning("Storage failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Your answer could not be saved, please try again"},
    )


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Check database connectivity and return status."""
    async with async_session() as session:
        await session.execute(text("SELECT 1"))
    return {"status": "ok"}
