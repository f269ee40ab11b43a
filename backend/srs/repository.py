"""Storage of card studies.

Converts between ``CardStudyRecord`` rows and ``CardStudy`` values. Storage
errors are rolled back and raised as ``PersistenceFailure``; stored rows that
break the card invariants are raised as ``InvalidState``. Nothing is retried.
"""

import logging
from collections.abc import Iterable

from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.card_study import CardStudyRecord
from backend.models.phrase import Phrase
from backend.models.review_log import ReviewLog
from backend.srs.errors import InvalidRating, InvalidState, PersistenceFailure
from backend.srs.fsrs import CardStudy, Rating, State, validate_card_study

logger = logging.getLogger(__name__)


def to_card_study(record: CardStudyRecord) -> CardStudy:
    """Convert a stored row to a validated ``CardStudy``."""
    try:
        state = State(record.state)
    except ValueError:
        raise InvalidState(
            f"Unknown state {record.state!r} for phrase {record.phrase_id}"
        ) from None

    last_rating = None
    if record.last_rating is not None:
        try:
            last_rating = Rating.parse(record.last_rating)
        except InvalidRating as exc:
            raise InvalidState(f"Stored rating for phrase {record.phrase_id}: {exc}") from exc

    card = CardStudy(
        user_id=record.user_id,
        phrase_id=record.phrase_id,
        state=state,
        due_date=record.due_date,
        stability=record.stability,
        difficulty=record.difficulty,
        elapsed_days=record.elapsed_days,
        scheduled_days=record.scheduled_days,
        reps=record.reps,
        lapses=record.lapses,
        last_review=record.last_review,
        last_rating=last_rating,
    )
    validate_card_study(card)
    return card


def _apply(record: CardStudyRecord, card: CardStudy) -> None:
    record.state = card.state.value
    record.due_date = card.due_date
    record.stability = card.stability
    record.difficulty = card.difficulty
    record.elapsed_days = card.elapsed_days
    record.scheduled_days = card.scheduled_days
    record.reps = card.reps
    record.lapses = card.lapses
    record.last_review = card.last_review
    record.last_rating = int(card.last_rating) if card.last_rating is not None else None


async def load_card_study(db: AsyncSession, user_id: str, phrase_id: str) -> CardStudy | None:
    """Return the user's card for a phrase, or None if they never studied it."""
    stmt = select(CardStudyRecord).where(
        and_(CardStudyRecord.user_id == user_id, CardStudyRecord.phrase_id == phrase_id)
    )
    try:
        record = (await db.execute(stmt)).scalar_one_or_none()
    except SQLAlchemyError as exc:
        raise PersistenceFailure(f"Could not load card {user_id}/{phrase_id}") from exc
    return to_card_study(record) if record is not None else None


async def load_card_studies(
    db: AsyncSession,
    user_id: str,
    *,
    phrase_ids: Iterable[str] | None = None,
    episode: str | None = None,
) -> list[CardStudy]:
    """Return the user's cards, optionally restricted to some phrases or an episode."""
    stmt = select(CardStudyRecord).where(CardStudyRecord.user_id == user_id)
    if phrase_ids is not None:
        stmt = stmt.where(CardStudyRecord.phrase_id.in_(list(phrase_ids)))
    if episode is not None:
        stmt = stmt.join(Phrase, Phrase.id == CardStudyRecord.phrase_id).where(
            Phrase.episode == episode
        )
    try:
        records = (await db.execute(stmt)).scalars().all()
    except SQLAlchemyError as exc:
        raise PersistenceFailure(f"Could not load cards for user {user_id}") from exc
    return [to_card_study(record) for record in records]


async def save_card_study(
    db: AsyncSession,
    card: CardStudy,
    *,
    previous: CardStudy | None = None,
    response_time_ms: int | None = None,
) -> CardStudy:
    """Insert or update a card and log the review that produced it, atomically.

    Args:
        db: Database session.
        card: The card returned by the scheduler.
        previous: The card before the review (None for a first review).
        response_time_ms: How long the learner took to answer.

    Returns:
        The saved card.

    Raises:
        PersistenceFailure: If the write fails; nothing is stored in that case.
    """
    stmt = select(CardStudyRecord).where(
        and_(
            CardStudyRecord.user_id == card.user_id,
            CardStudyRecord.phrase_id == card.phrase_id,
        )
    )
    try:
        record = (await db.execute(stmt)).scalar_one_or_none()
        if record is None:
            record = CardStudyRecord(user_id=card.user_id, phrase_id=card.phrase_id)
            db.add(record)
        _apply(record, card)

        if card.last_rating is not None and card.last_review is not None:
            db.add(
                ReviewLog(
                    user_id=card.user_id,
                    phrase_id=card.phrase_id,
                    rating=int(card.last_rating),
                    state_before=previous.state.value if previous else State.NEW.value,
                    state_after=card.state.value,
                    stability_before=previous.stability if previous else 0.0,
                    stability_after=card.stability,
                    difficulty_before=previous.difficulty if previous else 0.0,
                    difficulty_after=card.difficulty,
                    scheduled_days=card.scheduled_days,
                    response_time_ms=response_time_ms,
                    reviewed_at=card.last_review,
                )
            )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning("Failed to save card %s/%s: %s", card.user_id, card.phrase_id, exc)
        raise PersistenceFailure(f"Could not save card {card.user_id}/{card.phrase_id}") from exc
    return card
