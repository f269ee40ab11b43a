"""API routes for review sessions."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.auth import get_current_user_id
from backend.api.schemas import (
    AnswerRequest,
    AnswerResponse,
    NextCardResponse,
    ProgressResponse,
    SessionStartResponse,
    SessionStatsResponse,
)
from backend.config import utcnow
from backend.database import get_session
from backend.srs.session import GUEST_USER_ID, ReviewSession, start_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])

# In-memory session store (single process; sessions are lost on restart)
_active_sessions: dict[str, ReviewSession] = {}


def _get_owned_session(session_id: str, user_id: str | None) -> ReviewSession:
    review_session = _active_sessions.get(session_id)
    # Another user's session is reported as missing
    if not review_session or review_session.user_id != user_id:
        raise HTTPException(status_code=404, detail="Session not found")
    return review_session


@router.post("/start", response_model=SessionStartResponse)
async def session_start(
    episode: str | None = None,
    user_id: str | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> SessionStartResponse:
    """Start a new review session, optionally for one episode."""
    review_session = await start_session(db, user_id, episode=episode)

    if review_session.queue.total == 0:
        raise HTTPException(status_code=404, detail="No cards available for study at this time")

    session_id = review_session.study_session_id or str(uuid.uuid4())
    _active_sessions[session_id] = review_session

    return SessionStartResponse(
        session_id=session_id,
        user_id=user_id,
        total_cards=review_session.queue.total,
        due_cards=len(review_session.queue.due_cards),
        new_cards=len(review_session.queue.new_phrase_ids),
    )


@router.get("/next/{session_id}", response_model=NextCardResponse)
async def session_next(
    session_id: str,
    user_id: str | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> NextCardResponse:
    """Get the next phrase in the session."""
    review_session = _get_owned_session(session_id, user_id)

    if review_session.is_complete:
        raise HTTPException(status_code=410, detail="Session is complete")

    session_card = await review_session.get_next(db)
    if session_card is None:
        raise HTTPException(status_code=410, detail="No more cards in session")

    phrase = session_card.phrase
    outcomes = review_session.fsrs.preview(
        session_card.card,
        utcnow(),
        user_id=user_id or GUEST_USER_ID,
        phrase_id=phrase.id,
    )

    return NextCardResponse(
        phrase_id=phrase.id,
        phrase=phrase.phrase,
        translation=phrase.translation,
        context=phrase.context,
        is_new=session_card.is_new,
        progress=ProgressResponse.from_progress(phrase.id, session_card.progress),
        next_intervals={int(grade): card.scheduled_days for grade, card in outcomes.items()},
        remaining=review_session.remaining,
    )


@router.post("/answer/{session_id}", response_model=AnswerResponse)
async def session_answer(
    session_id: str,
    request: AnswerRequest,
    user_id: str | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> AnswerResponse:
    """Submit a rating for the current phrase."""
    review_session = _get_owned_session(session_id, user_id)

    if review_session.is_complete:
        raise HTTPException(status_code=410, detail="Session is complete")

    # Verify the phrase matches
    if review_session.current_phrase_id != request.phrase_id:
        raise HTTPException(status_code=400, detail="Phrase ID mismatch")

    outcome = await review_session.submit_rating(
        db,
        phrase_id=request.phrase_id,
        rating=request.rating,
        response_time_ms=request.response_time_ms,
    )

    return AnswerResponse(
        applied_rating=request.rating,
        state=outcome.card.state,
        next_due=outcome.card.due_date,
        interval_days=outcome.card.scheduled_days,
        saved=outcome.persisted,
        remaining=review_session.remaining,
        session_complete=review_session.is_complete,
    )


@router.get("/stats/{session_id}", response_model=SessionStatsResponse)
async def session_stats(
    session_id: str,
    user_id: str | None = Depends(get_current_user_id),
) -> SessionStatsResponse:
    """Get stats for the current session."""
    review_session = _get_owned_session(session_id, user_id)

    s = review_session.stats
    return SessionStatsResponse(
        cards_reviewed=s.cards_reviewed,
        correct=s.correct,
        incorrect=s.incorrect,
        new_cards_seen=s.new_cards_seen,
        accuracy=round(s.accuracy, 1),
        average_time_ms=s.average_time_ms,
    )


@router.post("/end/{session_id}")
async def session_end(
    session_id: str,
    user_id: str | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """End a session and clean up."""
    review_session = _get_owned_session(session_id, user_id)
    await review_session.finish(db)
    _active_sessions.pop(session_id, None)

    s = review_session.stats
    return {
        "status": "ended",
        "cards_reviewed": s.cards_reviewed,
        "correct": s.correct,
        "incorrect": s.incorrect,
    }
