"""FSRS (Free Spaced Repetition Scheduler) algorithm implementation.

An FSRS-5 style scheduler for LegendasPT phrase cards.
Reference: https://github.com/open-spaced-repetition/fsrs4anki

Key concepts:
- Stability (S): The number of days after which retention drops to 90%.
- Difficulty (D): A value between 1 and 10 representing inherent item difficulty.
- Retrievability (R): The probability of recall at a given time since last review.
- Rating: 1=Again, 2=Hard, 3=Good, 4=Easy
- State: New -> Learning -> Review, and Review -> Relearning on a lapse.

Nothing here reads the clock or touches storage: every call takes ``now``
explicitly and returns a new ``CardStudy`` instead of mutating its input.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum, IntEnum

from backend.srs.errors import InvalidRating, InvalidState

# FSRS-5 default parameters
# w[0..3]: initial stability for ratings Again/Hard/Good/Easy on first review
# w[4..5]: initial difficulty and its sensitivity to the first rating
# w[6]: difficulty update step
# w[7]: difficulty mean reversion weight
# w[8..10]: stability increase after a successful recall
# w[11..14]: stability after forgetting
# w[15..16]: hard penalty / easy bonus
# w[17..18]: short-term (same day) stability
DEFAULT_WEIGHTS = [
    0.40255,  # w0: initial stability for Again
    1.18385,  # w1: initial stability for Hard
    3.173,  # w2: initial stability for Good
    15.69105,  # w3: initial stability for Easy
    7.1949,  # w4: initial difficulty for Again
    0.5345,  # w5: initial difficulty rating sensitivity
    1.4604,  # w6: difficulty update step
    0.0046,  # w7: mean reversion weight
    1.54575,  # w8: recall stability base (exponent)
    0.1192,  # w9: recall stability saturation
    1.01925,  # w10: recall stability retrievability gain
    1.9395,  # w11: forget stability base
    0.11,  # w12: forget stability difficulty exponent
    0.29605,  # w13: forget stability stability exponent
    2.2698,  # w14: forget stability retrievability gain
    0.2315,  # w15: hard penalty
    2.9898,  # w16: easy bonus
    0.51655,  # w17: short-term stability gain
    0.6621,  # w18: short-term rating offset
]

DEFAULT_TARGET_RETENTION = 0.9
DEFAULT_MAXIMUM_INTERVAL = 36500  # days
DEFAULT_GRADUATION_DAYS = 1.0

# Power forgetting curve: R(t, S) = (1 + FACTOR * t / S) ** DECAY, so R = 0.9 at t = S
DECAY = -0.5
FACTOR = 0.9 ** (1 / DECAY) - 1

# Bounds
MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0
MIN_STABILITY = 0.4  # days

SECONDS_PER_DAY = 86400


class Rating(IntEnum):
    """How well the learner recalled the phrase."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @classmethod
    def parse(cls, value: object) -> "Rating":
        """Convert a raw rating to a ``Rating``, raising ``InvalidRating`` if impossible."""
        # bool is an int subclass, but True is not a rating
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidRating(value)
        try:
            return cls(value)
        except ValueError:
            raise InvalidRating(value) from None


class State(str, Enum):
    """Lifecycle of a card. Values are the strings stored in the database."""

    NEW = "New"
    LEARNING = "Learning"
    REVIEW = "Review"
    RELEARNING = "Relearning"


@dataclass(frozen=True)
class CardStudy:
    """The memory state of one phrase for one user."""

    user_id: str
    phrase_id: str
    state: State = State.NEW
    due_date: datetime | None = None  # Meaningless while New
    stability: float = 0.0  # Days until retention = 90%
    difficulty: float = 0.0  # 1-10 once reviewed
    elapsed_days: float = 0.0  # Days between the last two reviews
    scheduled_days: float = 0.0  # Interval chosen at the last review
    reps: int = 0  # Total reviews
    lapses: int = 0  # Again ratings given after the first review
    last_review: datetime | None = None
    last_rating: Rating | None = None

    @property
    def is_new(self) -> bool:
        return self.state is State.NEW

    def is_due(self, now: datetime) -> bool:
        """Return True if the card has been reviewed and is due at ``now``."""
        return not self.is_new and self.due_date is not None and self.due_date <= now


def validate_card_study(card: CardStudy) -> None:
    """Raise ``InvalidState`` if the card's fields cannot occur together."""
    if not isinstance(card.state, State):
        raise InvalidState(f"Unknown state {card.state!r} for phrase {card.phrase_id}")
    if card.reps < 0 or card.lapses < 0:
        raise InvalidState(
            f"Negative counters for phrase {card.phrase_id}: reps={card.reps}, lapses={card.lapses}"
        )
    if card.stability < 0:
        raise InvalidState(f"Negative stability {card.stability} for phrase {card.phrase_id}")
    if card.lapses > card.reps:
        raise InvalidState(
            f"More lapses than reviews for phrase {card.phrase_id}: "
            f"reps={card.reps}, lapses={card.lapses}"
        )

    if card.state is State.NEW:
        if card.reps > 0:
            raise InvalidState(f"New card {card.phrase_id} has reps={card.reps}")
        if card.last_review is not None:
            raise InvalidState(f"New card {card.phrase_id} has a last review")
        return

    if card.reps == 0:
        raise InvalidState(f"{card.state.value} card {card.phrase_id} has never been reviewed")
    if card.stability <= 0:
        raise InvalidState(f"{card.state.value} card {card.phrase_id} has no stability")
    if not MIN_DIFFICULTY <= card.difficulty <= MAX_DIFFICULTY:
        raise InvalidState(
            f"Difficulty {card.difficulty} out of range for phrase {card.phrase_id}"
        )
    if card.due_date is None:
        raise InvalidState(f"{card.state.value} card {card.phrase_id} has no due date")


class FSRS:
    """Free Spaced Repetition Scheduler."""

    def __init__(
        self,
        weights: list[float] | None = None,
        target_retention: float = DEFAULT_TARGET_RETENTION,
        maximum_interval: int = DEFAULT_MAXIMUM_INTERVAL,
        graduation_days: float = DEFAULT_GRADUATION_DAYS,
    ) -> None:
        """Initialize FSRS with optional custom weights and scheduling limits."""
        self.w = list(weights) if weights is not None else list(DEFAULT_WEIGHTS)
        if len(self.w) != len(DEFAULT_WEIGHTS):
            raise ValueError(f"Expected {len(DEFAULT_WEIGHTS)} weights, got {len(self.w)}")
        if not 0 < target_retention < 1:
            raise ValueError(f"target_retention must be between 0 and 1, got {target_retention}")
        if maximum_interval < 1:
            raise ValueError(f"maximum_interval must be at least 1 day, got {maximum_interval}")
        self.target_retention = target_retention
        self.maximum_interval = maximum_interval
        self.graduation_days = graduation_days

    def record_review(
        self,
        card: CardStudy | None,
        rating: int,
        now: datetime,
        *,
        user_id: str | None = None,
        phrase_id: str | None = None,
    ) -> CardStudy:
        """Apply a review rating and return the updated card.

        Args:
            card: Current card state, or None if the user never studied the phrase.
            rating: Review rating (1=Again, 2=Hard, 3=Good, 4=Easy).
            now: When the review happened.
            user_id: Owner of the card; required when ``card`` is None.
            phrase_id: Phrase of the card; required when ``card`` is None.

        Returns:
            A new CardStudy; the input is left untouched.

        Raises:
            InvalidRating: If ``rating`` is not 1-4.
            InvalidState: If ``card`` is malformed or belongs to another user/phrase.
        """
        grade = Rating.parse(rating)
        card = self._resolve(card, user_id, phrase_id)

        if card.is_new:
            return self._first_review(card, grade, now)

        elapsed_days = self._elapsed_days(card, now)
        retrievability = self._retrievability(elapsed_days, card.stability)

        if card.state is not State.REVIEW and elapsed_days < 1:
            stability = self._short_term_stability(card.stability, grade)
        elif grade is Rating.AGAIN:
            stability = self._stability_after_fail(card.stability, card.difficulty, retrievability)
        else:
            stability = self._stability_after_success(
                card.stability, card.difficulty, retrievability, grade
            )
        stability = max(MIN_STABILITY, stability)

        interval = self._stability_to_interval(stability)
        state = self._next_state(card.state, grade, interval)
        scheduled_days = self._scheduled_days(state, interval)

        return replace(
            card,
            state=state,
            due_date=now + timedelta(days=scheduled_days),
            stability=stability,
            difficulty=self._update_difficulty(card.difficulty, grade),
            elapsed_days=elapsed_days,
            scheduled_days=scheduled_days,
            reps=card.reps + 1,
            lapses=card.lapses + 1 if grade is Rating.AGAIN else card.lapses,
            last_review=now,
            last_rating=grade,
        )

    def preview(
        self,
        card: CardStudy | None,
        now: datetime,
        *,
        user_id: str | None = None,
        phrase_id: str | None = None,
    ) -> dict[Rating, CardStudy]:
        """Return the card each rating would produce at ``now``."""
        return {
            grade: self.record_review(card, grade, now, user_id=user_id, phrase_id=phrase_id)
            for grade in Rating
        }

    def retrievability(self, card: CardStudy | None, now: datetime) -> float:
        """Return the probability of recalling the card at ``now`` (0 if never studied)."""
        if card is None or card.is_new:
            return 0.0
        validate_card_study(card)
        return self._retrievability(self._elapsed_days(card, now), card.stability)

    def _resolve(
        self,
        card: CardStudy | None,
        user_id: str | None,
        phrase_id: str | None,
    ) -> CardStudy:
        if card is None:
            if user_id is None or phrase_id is None:
                raise ValueError("user_id and phrase_id are required for a phrase without a card")
            return CardStudy(user_id=user_id, phrase_id=phrase_id)

        validate_card_study(card)
        if (user_id is not None and user_id != card.user_id) or (
            phrase_id is not None and phrase_id != card.phrase_id
        ):
            raise InvalidState(
                f"Card belongs to ({card.user_id}, {card.phrase_id}), "
                f"not ({user_id}, {phrase_id})"
            )
        return card

    def _first_review(self, card: CardStudy, grade: Rating, now: datetime) -> CardStudy:
        """Initial stability and difficulty come straight from the first rating."""
        stability = max(MIN_STABILITY, self.w[grade - 1])  # w0..w3
        scheduled_days = self._scheduled_days(
            State.LEARNING, self._stability_to_interval(stability)
        )
        return replace(
            card,
            state=State.LEARNING,
            due_date=now + timedelta(days=scheduled_days),
            stability=stability,
            difficulty=self._initial_difficulty(grade),
            elapsed_days=0.0,
            scheduled_days=scheduled_days,
            reps=card.reps + 1,
            last_review=now,
            last_rating=grade,
        )

    def _next_state(self, state: State, grade: Rating, interval: float) -> State:
        if state is State.REVIEW:
            return State.RELEARNING if grade is Rating.AGAIN else State.REVIEW
        if grade is not Rating.AGAIN and interval >= self.graduation_days:
            return State.REVIEW
        return state

    def _scheduled_days(self, state: State, interval: float) -> float:
        """Review cards are scheduled in whole days; learning cards keep fractions of a day."""
        if state is State.REVIEW:
            return float(min(max(round(interval), 1), self.maximum_interval))
        return min(interval, float(self.maximum_interval))

    def _elapsed_days(self, card: CardStudy, now: datetime) -> float:
        last_review = card.last_review
        if last_review is None:
            last_review = card.due_date - timedelta(days=card.scheduled_days)
        return max(0.0, (now - last_review).total_seconds() / SECONDS_PER_DAY)

    def _initial_difficulty(self, grade: Rating) -> float:
        """D0 = w4 - e^(w5 * (G - 1)) + 1"""
        d = self.w[4] - math.exp(self.w[5] * (grade - 1)) + 1
        return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, d))

    def _update_difficulty(self, current_d: float, grade: Rating) -> float:
        """Step difficulty by rating, damped near 10, with mean reversion toward D0(Easy).

        Again and Hard never lower difficulty, Easy never raises it.
        """
        delta = -self.w[6] * (grade - 3)
        new_d = current_d + delta * (10 - current_d) / 9
        new_d = self.w[7] * self._initial_difficulty(Rating.EASY) + (1 - self.w[7]) * new_d
        new_d = max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, new_d))
        if grade <= Rating.HARD:
            return max(current_d, new_d)
        if grade is Rating.EASY:
            return min(current_d, new_d)
        return new_d

    def _retrievability(self, elapsed_days: float, stability: float) -> float:
        """Calculate the probability of recall given elapsed time and stability.

        Uses the power forgetting curve: R = (1 + FACTOR * t / S) ^ DECAY
        """
        if elapsed_days <= 0:
            return 1.0
        return (1 + FACTOR * elapsed_days / stability) ** DECAY

    def _stability_to_interval(self, stability: float) -> float:
        """Convert stability to an interval in days for the target retention.

        Derived from: target_retention = (1 + FACTOR * interval / S) ^ DECAY
        Solving: interval = S / FACTOR * (target_retention ^ (1 / DECAY) - 1)
        """
        return stability / FACTOR * (self.target_retention ** (1 / DECAY) - 1)

    def _short_term_stability(self, stability: float, grade: Rating) -> float:
        """Same-day review of a learning card.

        S' = S * e^(w17 * (G - 3 + w18))
        """
        factor = math.exp(self.w[17] * (grade - 3 + self.w[18]))
        # Only Again may shrink stability
        if grade >= Rating.HARD:
            factor = max(1.0, factor)
        return stability * factor

    def _stability_after_success(
        self,
        stability: float,
        difficulty: float,
        retrievability: float,
        grade: Rating,
    ) -> float:
        """Calculate new stability after a successful review (rating >= 2).

        S' = S * (1 + e^w8 * (11 - D) * S^(-w9) * (e^(w10 * (1 - R)) - 1) * hard * easy)
        """
        hard_penalty = self.w[15] if grade is Rating.HARD else 1.0
        easy_bonus = self.w[16] if grade is Rating.EASY else 1.0
        factor = (
            math.exp(self.w[8])
            * (11 - difficulty)
            * stability ** (-self.w[9])
            * (math.exp(self.w[10] * (1 - retrievability)) - 1)
            * hard_penalty
            * easy_bonus
        )
        return stability * (1 + factor)

    def _stability_after_fail(
        self,
        stability: float,
        difficulty: float,
        retrievability: float,
    ) -> float:
        """Calculate new stability after a lapse (rating = 1).

        S' = w11 * D^(-w12) * ((S + 1)^w13 - 1) * e^(w14 * (1 - R))
        """
        new_s = (
            self.w[11]
            * difficulty ** (-self.w[12])
            * ((stability + 1) ** self.w[13] - 1)
            * math.exp(self.w[14] * (1 - retrievability))
        )
        # Forgetting never leaves a card more stable than before
        return min(new_s, stability)
