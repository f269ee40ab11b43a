"""Review session orchestrator.

Coordinates the scheduler, the review queue and card storage into a
session flow. Signed-in users get their cards and a ``StudySession`` row
saved; guests can study but nothing is stored for them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import settings, utcnow
from backend.models.phrase import Phrase
from backend.models.study_session import StudySession
from backend.srs.errors import PersistenceFailure, SchedulerError
from backend.srs.fsrs import FSRS, CardStudy, Rating
from backend.srs.progress import CardProgress, project_progress
from backend.srs.queue import QueueConfig, ReviewQueue, build_queue
from backend.srs.repository import load_card_study, save_card_study

logger = logging.getLogger(__name__)

GUEST_USER_ID = "guest"


def fsrs_from_settings() -> FSRS:
    """Build a scheduler with the configured retention and interval limits."""
    return FSRS(
        target_retention=settings.target_retention,
        maximum_interval=settings.maximum_interval_days,
        graduation_days=settings.graduation_days,
    )


@dataclass
class SessionCard:
    """A phrase presented during a session, with the learner's current card."""

    phrase: Phrase
    card: CardStudy | None
    progress: CardProgress

    @property
    def is_new(self) -> bool:
        return self.card is None or self.card.is_new


@dataclass
class SessionStats:
    """Statistics for a review session."""

    cards_reviewed: int = 0
    correct: int = 0
    incorrect: int = 0
    new_cards_seen: int = 0
    average_time_ms: float = 0.0
    total_time_ms: int = 0

    @property
    def accuracy(self) -> float:
        """Percentage of reviews rated Good or Easy."""
        return self.correct / self.cards_reviewed * 100 if self.cards_reviewed else 0.0


@dataclass
class ReviewOutcome:
    """A card before and after one review."""

    card: CardStudy
    previous: CardStudy | None
    persisted: bool


async def review_phrase(
    db: AsyncSession,
    fsrs: FSRS,
    user_id: str,
    phrase_id: str,
    rating: int,
    now: datetime,
    response_time_ms: int | None = None,
) -> ReviewOutcome:
    """Load the user's card for a phrase, apply a rating and save the result.

    Raises:
        InvalidRating: Before anything is loaded.
        InvalidState: If the stored card is malformed.
        PersistenceFailure: If loading or saving fails; the stored card is unchanged.
    """
    grade = Rating.parse(rating)
    previous = await load_card_study(db, user_id, phrase_id)
    card = fsrs.record_review(previous, grade, now, user_id=user_id, phrase_id=phrase_id)
    await save_card_study(db, card, previous=previous, response_time_ms=response_time_ms)

    logger.info(
        "User %s rated phrase %s %s: %s -> %s, next in %.2f days",
        user_id,
        phrase_id,
        grade.name,
        previous.state.value if previous else "New",
        card.state.value,
        card.scheduled_days,
    )
    return ReviewOutcome(card=card, previous=previous, persisted=True)


@dataclass
class ReviewSession:
    """Manages an active review session for a user (or guest)."""

    user_id: str | None
    queue: ReviewQueue
    fsrs: FSRS
    started_at: datetime
    episode: str | None = None
    study_session_id: str | None = None
    stats: SessionStats = field(default_factory=SessionStats)
    _card_index: int = 0
    _phrase_ids: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Initialize the phrase order from the queue."""
        self._phrase_ids = self.queue.interleaved()

    @property
    def remaining(self) -> int:
        """Return the number of phrases left to review."""
        return max(0, len(self._phrase_ids) - self._card_index)

    @property
    def is_complete(self) -> bool:
        """Return True if all phrases have been reviewed."""
        return self._card_index >= len(self._phrase_ids)

    @property
    def current_phrase_id(self) -> str | None:
        """Return the current phrase id or None if the session is complete."""
        if self._card_index < len(self._phrase_ids):
            return self._phrase_ids[self._card_index]
        return None

    async def get_next(self, db: AsyncSession) -> SessionCard | None:
        """Get the next phrase to present.

        Returns None if the session is complete.
        """
        phrase_id = self.current_phrase_id
        if phrase_id is None:
            return None

        phrase = await db.get(Phrase, phrase_id)
        if phrase is None:
            # Deleted since the queue was built
            logger.warning("Skipping phrase %s: no longer exists", phrase_id)
            self._card_index += 1
            return await self.get_next(db)

        card = None
        if self.user_id is not None:
            card = await load_card_study(db, self.user_id, phrase_id)
        return SessionCard(phrase=phrase, card=card, progress=project_progress(card))

    async def submit_rating(
        self,
        db: AsyncSession,
        phrase_id: str,
        rating: int,
        now: datetime | None = None,
        response_time_ms: int = 0,
    ) -> ReviewOutcome:
        """Rate the current phrase and advance the session.

        A failed submission raises and leaves the stored card, the session
        row and the session position as they were.

        Args:
            db: Database session.
            phrase_id: The phrase being rated; must be the current one.
            rating: 1=Again, 2=Hard, 3=Good, 4=Easy.
            now: Review time (defaults to utcnow).
            response_time_ms: How long the learner took to answer.

        Returns:
            The review outcome. Guests get the computed card, unsaved.
        """
        grade = Rating.parse(rating)
        if phrase_id != self.current_phrase_id:
            raise ValueError(f"Phrase {phrase_id} is not the current card of this session")
        now = now or utcnow()
        is_correct = grade >= Rating.GOOD

        if self.user_id is None:
            card = self.fsrs.record_review(
                None, grade, now, user_id=GUEST_USER_ID, phrase_id=phrase_id
            )
            outcome = ReviewOutcome(card=card, previous=None, persisted=False)
        else:
            # Staged on the same transaction as the card, so both commit or neither
            try:
                await self._stage_session_row(db, now, is_correct)
                outcome = await review_phrase(
                    db, self.fsrs, self.user_id, phrase_id, grade, now, response_time_ms
                )
            except SchedulerError:
                await db.rollback()
                raise

        self.stats.cards_reviewed += 1
        self.stats.total_time_ms += response_time_ms
        self.stats.average_time_ms = self.stats.total_time_ms / self.stats.cards_reviewed
        if outcome.previous is None or outcome.previous.is_new:
            self.stats.new_cards_seen += 1
        if is_correct:
            self.stats.correct += 1
        else:
            self.stats.incorrect += 1

        self._card_index += 1
        return outcome

    async def finish(self, db: AsyncSession, now: datetime | None = None) -> None:
        """Mark the stored session as completed (no-op for guests)."""
        if self.study_session_id is None:
            return
        now = now or utcnow()
        try:
            row = await db.get(StudySession, self.study_session_id)
            if row is not None and row.completed_at is None:
                row.completed_at = now
                row.session_duration_seconds = self._duration_seconds(now)
                await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise PersistenceFailure(f"Could not finish session {self.study_session_id}") from exc

    async def _stage_session_row(self, db: AsyncSession, now: datetime, is_correct: bool) -> None:
        if self.study_session_id is None:
            return
        try:
            row = await db.get(StudySession, self.study_session_id)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not load session {self.study_session_id}") from exc
        if row is None:
            return
        row.cards_studied = self.stats.cards_reviewed + 1
        row.cards_correct = self.stats.correct + (1 if is_correct else 0)
        row.session_duration_seconds = self._duration_seconds(now)
        if self._card_index + 1 >= len(self._phrase_ids):
            row.completed_at = now

    def _duration_seconds(self, now: datetime) -> int:
        return max(0, int((now - self.started_at).total_seconds()))


async def start_session(
    db: AsyncSession,
    user_id: str | None,
    *,
    episode: str | None = None,
    fsrs: FSRS | None = None,
    config: QueueConfig | None = None,
    now: datetime | None = None,
) -> ReviewSession:
    """Start a new review session.

    Args:
        db: Database session.
        user_id: The user starting the session, or None for a guest.
        episode: Restrict the session to one episode's phrases.
        fsrs: Scheduler to use (defaults to the configured one).
        config: Queue limits.
        now: Session start time (defaults to utcnow).

    Returns:
        A ReviewSession ready for use.
    """
    now = now or utcnow()
    queue = await build_queue(db, user_id, episode=episode, config=config, now=now)

    study_session_id = None
    if user_id is not None and queue.total > 0:
        if not queue.new_phrase_ids:
            session_type = "review"
        elif not queue.due_cards:
            session_type = "new"
        else:
            session_type = "mixed"
        row = StudySession(
            user_id=user_id,
            episode=episode,
            session_type=session_type,
            total_cards=queue.total,
        )
        db.add(row)
        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise PersistenceFailure(f"Could not create a study session for {user_id}") from exc
        study_session_id = row.id

    session = ReviewSession(
        user_id=user_id,
        queue=queue,
        fsrs=fsrs or fsrs_from_settings(),
        started_at=now,
        episode=episode,
        study_session_id=study_session_id,
    )

    logger.info(
        "Started session for user %s: %d cards queued",
        user_id or "<guest>",
        queue.total,
    )
    return session
