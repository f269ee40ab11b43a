"""Read-side progress projection for phrase cards.

Progress is derived from the raw card fields on every call and never stored,
so it cannot go stale after the next review.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from backend.srs.fsrs import CardStudy, State

# Progress weights (percentage points)
STABILITY_WEIGHT = 60  # Full weight at stability >= 10 days
REPS_WEIGHT = 30  # Full weight at 10 reviews
LAPSE_PENALTY = 10  # Full penalty at 5 lapses
STATE_BONUS = {State.REVIEW: 10, State.LEARNING: 5}

# A card counts as learned once it is in review with a couple of days of stability
LEARNED_MIN_STABILITY = 2.0
LEARNED_MIN_REPS = 3


@dataclass(frozen=True)
class CardProgress:
    progress_percentage: float
    state: State
    is_learned: bool


def project_progress(card: CardStudy | None) -> CardProgress:
    """Project a card (or its absence) onto a 0-100 progress score."""
    if card is None:
        return CardProgress(progress_percentage=0.0, state=State.NEW, is_learned=False)

    stability_progress = min(card.stability / 10, 1) * STABILITY_WEIGHT
    review_progress = min(card.reps / 10, 1) * REPS_WEIGHT
    lapse_penalty = min(card.lapses / 5, 1) * LAPSE_PENALTY
    state_bonus = STATE_BONUS.get(card.state, 0)

    total = stability_progress + review_progress + state_bonus - lapse_penalty
    return CardProgress(
        progress_percentage=float(max(0, min(100, total))),
        state=card.state,
        is_learned=(
            card.state is State.REVIEW
            and card.stability >= LEARNED_MIN_STABILITY
            and card.reps >= LEARNED_MIN_REPS
        ),
    )


class SortOption(str, Enum):
    NONE = "none"
    ALPHABETICAL = "alphabetical"
    REVERSE_ALPHABETICAL = "reverse-alphabetical"
    PROGRESS_HIGH = "progress-high"
    PROGRESS_LOW = "progress-low"


class FilterOption(str, Enum):
    ALL = "all"
    FAVORITES = "favorites"


@dataclass(frozen=True)
class PhraseProgress:
    """A phrase as listed to a learner: its text, progress and favorite flag."""

    phrase_id: str
    phrase: str
    translation: str
    progress: CardProgress
    is_favorite: bool = False


def sort_and_filter(
    entries: Iterable[PhraseProgress],
    sort: SortOption = SortOption.NONE,
    filter_by: FilterOption = FilterOption.ALL,
) -> list[PhraseProgress]:
    """Filter phrases by favorites and order them for display.

    ``SortOption.NONE`` keeps the input order. Alphabetical sorts ignore case;
    progress sorts are stable and break ties alphabetically.
    """
    result = list(entries)
    if filter_by is FilterOption.FAVORITES:
        result = [entry for entry in result if entry.is_favorite]

    if sort is SortOption.ALPHABETICAL:
        result.sort(key=lambda e: e.phrase.casefold())
    elif sort is SortOption.REVERSE_ALPHABETICAL:
        result.sort(key=lambda e: e.phrase.casefold(), reverse=True)
    elif sort is SortOption.PROGRESS_HIGH:
        result.sort(key=lambda e: (-e.progress.progress_percentage, e.phrase.casefold()))
    elif sort is SortOption.PROGRESS_LOW:
        result.sort(key=lambda e: (e.progress.progress_percentage, e.phrase.casefold()))
    return result
