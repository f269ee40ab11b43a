"""API routes for individual cards: direct reviews, due cards and progress."""

import logging
from itertools import islice

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.auth import get_current_user_id, require_user_id
from backend.api.schemas import (
    CardStudyResponse,
    DueCardResponse,
    ProgressResponse,
    ReviewRequest,
    ReviewResponse,
)
from backend.config import utcnow
from backend.database import get_session
from backend.models.phrase import Phrase
from backend.srs.fsrs import Rating
from backend.srs.progress import project_progress
from backend.srs.queue import select_due_cards
from backend.srs.repository import load_card_studies
from backend.srs.session import fsrs_from_settings, review_phrase

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cards", tags=["cards"])


@router.post("/{phrase_id}/review", response_model=ReviewResponse)
async def review_card(
    phrase_id: str,
    request: ReviewRequest,
    user_id: str = Depends(require_user_id),
    db: AsyncSession = Depends(get_session),
) -> ReviewResponse:
    """Rate a phrase outside of a session and return its new schedule."""
    grade = Rating.parse(request.rating)
    if await db.get(Phrase, phrase_id) is None:
        raise HTTPException(status_code=404, detail="Phrase not found")

    fsrs = fsrs_from_settings()
    now = utcnow()
    outcome = await review_phrase(
        db, fsrs, user_id, phrase_id, grade, now, response_time_ms=request.response_time_ms
    )

    return ReviewResponse(
        card=CardStudyResponse.from_card(outcome.card),
        progress=ProgressResponse.from_progress(phrase_id, project_progress(outcome.card)),
        retrievability_before=fsrs.retrievability(outcome.previous, now),
    )


@router.get("/due", response_model=list[DueCardResponse])
async def due_cards(
    episode: str | None = None,
    limit: int = Query(default=20, ge=1, le=500),
    user_id: str = Depends(require_user_id),
    db: AsyncSession = Depends(get_session),
) -> list[DueCardResponse]:
    """List the user's due cards, most overdue first."""
    cards = await load_card_studies(db, user_id, episode=episode)
    due = list(islice(select_due_cards(cards, utcnow()), limit))
    if not due:
        return []

    stmt = select(Phrase).where(Phrase.id.in_([card.phrase_id for card in due]))
    phrases = {phrase.id: phrase for phrase in (await db.execute(stmt)).scalars().all()}

    return [
        DueCardResponse(
            phrase_id=card.phrase_id,
            phrase=phrases[card.phrase_id].phrase,
            translation=phrases[card.phrase_id].translation,
            due_date=card.due_date,
            state=card.state,
            reps=card.reps,
        )
        for card in due
        if card.phrase_id in phrases
    ]


@router.get("/progress", response_model=list[ProgressResponse])
async def card_progress(
    phrase_id: list[str] = Query(default=[]),
    user_id: str | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> list[ProgressResponse]:
    """Progress for each requested phrase, in request order. Guests see no progress."""
    cards = {}
    if user_id is not None and phrase_id:
        cards = {
            card.phrase_id: card
            for card in await load_card_studies(db, user_id, phrase_ids=phrase_id)
        }
    return [
        ProgressResponse.from_progress(pid, project_progress(cards.get(pid)))
        for pid in phrase_id
    ]
