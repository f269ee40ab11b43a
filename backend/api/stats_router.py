"""API routes for study statistics."""

import logging
from collections import Counter
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends
from sqlalchemy import and_, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.auth import require_user_id
from backend.api.schemas import StudyStatsResponse
from backend.config import utcnow
from backend.database import get_session
from backend.models.phrase import Phrase
from backend.models.review_log import ReviewLog
from backend.srs.fsrs import Rating, State
from backend.srs.progress import project_progress
from backend.srs.repository import load_card_studies

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("", response_model=StudyStatsResponse)
async def get_study_stats(
    episode: str | None = None,
    user_id: str = Depends(require_user_id),
    db: AsyncSession = Depends(get_session),
) -> StudyStatsResponse:
    """Get study statistics for the user, optionally for one episode."""
    now = utcnow()
    cards = await load_card_studies(db, user_id, episode=episode)
    by_state = Counter(card.state for card in cards)

    # Average retention (from recent reviews: % rated >= Good)
    recent_cutoff = now - timedelta(days=30)
    conditions = [ReviewLog.user_id == user_id, ReviewLog.reviewed_at >= recent_cutoff]
    if episode is not None:
        conditions.append(
            ReviewLog.phrase_id.in_(select(Phrase.id).where(Phrase.episode == episode))
        )
    retention_total_stmt = select(func.count(ReviewLog.id)).where(and_(*conditions))
    retention_pass_stmt = select(func.count(ReviewLog.id)).where(
        and_(*conditions, ReviewLog.rating >= int(Rating.GOOD))
    )
    retention_total = (await db.execute(retention_total_stmt)).scalar() or 0
    retention_pass = (await db.execute(retention_pass_stmt)).scalar() or 0
    average_retention = retention_pass / retention_total if retention_total > 0 else None

    return StudyStatsResponse(
        total=len(cards),
        new=by_state[State.NEW],
        learning=by_state[State.LEARNING],
        review=by_state[State.REVIEW],
        relearning=by_state[State.RELEARNING],
        total_reviews=sum(card.reps for card in cards),
        total_lapses=sum(card.lapses for card in cards),
        cards_due=sum(1 for card in cards if card.is_due(now)),
        cards_learned=sum(1 for card in cards if project_progress(card).is_learned),
        average_retention=round(average_retention, 3) if average_retention is not None else None,
        streak_days=await _calculate_streak(db, user_id, now),
    )


async def _calculate_streak(
    db: AsyncSession,
    user_id: str,
    now: datetime,
) -> int:
    """Calculate the number of consecutive days, up to today, with at least one review."""
    stmt = (
        select(distinct(func.date(ReviewLog.reviewed_at)))
        .where(ReviewLog.user_id == user_id)
        .order_by(func.date(ReviewLog.reviewed_at).desc())
    )
    result = await db.execute(stmt)
    dates = [row[0] for row in result.all()]

    if not dates:
        return 0

    today = now.date()
    streak = 0

    for i, review_date in enumerate(dates):
        expected = today - timedelta(days=i)
        if str(review_date) == str(expected):
            streak += 1
        else:
            break

    return streak
