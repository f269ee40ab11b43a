"""Queue management for SRS review sessions.

Selects the cards that are due, mixes in phrases the learner has never
studied, and applies session limits to prevent overwhelm.
"""

import heapq
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from itertools import islice

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import settings, utcnow
from backend.models.card_study import CardStudyRecord
from backend.models.phrase import Phrase
from backend.srs.fsrs import CardStudy, State
from backend.srs.repository import load_card_studies

logger = logging.getLogger(__name__)


class DueCards:
    """The cards due at ``now``, earliest due date first.

    Iteration is lazy (cards come off a heap one at a time) and can be
    restarted: every ``iter()`` walks the same snapshot of cards again.
    Ties on the due date are broken by phrase id. Never-studied cards have no
    due date and are not included.
    """

    def __init__(self, cards: Iterable[CardStudy], now: datetime) -> None:
        self._cards = tuple(cards)
        self.now = now

    def __iter__(self) -> Iterator[CardStudy]:
        heap = [
            (card.due_date, card.phrase_id, index)
            for index, card in enumerate(self._cards)
            if card.is_due(self.now)
        ]
        heapq.heapify(heap)
        while heap:
            _, _, index = heapq.heappop(heap)
            yield self._cards[index]


def select_due_cards(cards: Iterable[CardStudy], now: datetime) -> DueCards:
    """Return the cards with ``due_date <= now`` in review order."""
    return DueCards(cards, now)


@dataclass
class QueueConfig:
    """Configuration for queue building."""

    max_reviews: int = settings.max_reviews_per_session
    max_new: int = settings.max_new_cards_per_session
    new_card_ratio: float = 0.25  # 1 new card per 4 reviews


@dataclass
class ReviewQueue:
    """A prepared queue of cards for a review session."""

    due_cards: list[CardStudy] = field(default_factory=list)
    new_phrase_ids: list[str] = field(default_factory=list)
    total: int = 0

    def interleaved(self) -> list[str]:
        """Return phrase ids interleaved: mostly reviews with new phrases mixed in.

        Strategy: Insert new phrases at regular intervals within the review queue
        to maintain engagement without overwhelming with unfamiliar material.
        """
        due = [card.phrase_id for card in self.due_cards]
        new = list(self.new_phrase_ids)
        if not new:
            return due
        if not due:
            return new

        result: list[str] = []
        interval = max(1, len(due) // (len(new) + 1))
        new_idx = 0

        for i, phrase_id in enumerate(due):
            result.append(phrase_id)
            if new_idx < len(new) and (i + 1) % interval == 0:
                result.append(new[new_idx])
                new_idx += 1

        result.extend(new[new_idx:])
        return result


def new_card_slots(due_count: int, config: QueueConfig) -> int:
    """How many never-studied phrases to add next to ``due_count`` reviews."""
    if due_count == 0:
        return config.max_new
    return min(config.max_new, max(1, int(due_count * config.new_card_ratio)))


async def build_queue(
    session: AsyncSession,
    user_id: str | None,
    *,
    episode: str | None = None,
    config: QueueConfig | None = None,
    now: datetime | None = None,
) -> ReviewQueue:
    """Build a review queue for a user.

    Takes the user's due cards (most overdue first) and phrases they have
    never studied, respecting session limits. Guests (``user_id=None``) have
    no stored cards and only get new phrases.

    Args:
        session: Database session.
        user_id: The user to build the queue for, or None for a guest.
        episode: Restrict the queue to one episode's phrases.
        config: Queue configuration (limits, ratios).
        now: Current time (defaults to utcnow).

    Returns:
        A ReviewQueue with due cards and new phrase ids.
    """
    config = config or QueueConfig()
    now = now or utcnow()

    due_cards: list[CardStudy] = []
    if user_id is not None:
        cards = await load_card_studies(session, user_id, episode=episode)
        due_cards = list(islice(select_due_cards(cards, now), config.max_reviews))

    new_stmt = select(Phrase.id).order_by(Phrase.created_at.asc(), Phrase.id.asc())
    if episode is not None:
        new_stmt = new_stmt.where(Phrase.episode == episode)
    if user_id is not None:
        studied = select(CardStudyRecord.phrase_id).where(
            and_(
                CardStudyRecord.user_id == user_id,
                CardStudyRecord.state != State.NEW.value,
            )
        )
        new_stmt = new_stmt.where(Phrase.id.not_in(studied))
    new_stmt = new_stmt.limit(new_card_slots(len(due_cards), config))
    new_phrase_ids = list((await session.execute(new_stmt)).scalars().all())

    queue = ReviewQueue(
        due_cards=due_cards,
        new_phrase_ids=new_phrase_ids,
        total=len(due_cards) + len(new_phrase_ids),
    )

    logger.info(
        "Built queue for user %s: %d due + %d new = %d total",
        user_id or "<guest>",
        len(due_cards),
        len(new_phrase_ids),
        queue.total,
    )
    return queue
