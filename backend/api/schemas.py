"""Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel, Field

from backend.srs.fsrs import CardStudy, State
from backend.srs.progress import CardProgress

# --- Cards ---


class CardStudyResponse(BaseModel):
    """A user's stored scheduling state for one phrase."""

    phrase_id: str
    state: State
    due_date: datetime | None
    stability: float
    difficulty: float
    elapsed_days: float
    scheduled_days: float
    reps: int
    lapses: int
    last_review: datetime | None = None
    last_rating: int | None = None  # 1=Again, 2=Hard, 3=Good, 4=Easy

    @classmethod
    def from_card(cls, card: CardStudy) -> "CardStudyResponse":
        return cls(
            phrase_id=card.phrase_id,
            state=card.state,
            due_date=card.due_date,
            stability=card.stability,
            difficulty=card.difficulty,
            elapsed_days=card.elapsed_days,
            scheduled_days=card.scheduled_days,
            reps=card.reps,
            lapses=card.lapses,
            last_review=card.last_review,
            last_rating=int(card.last_rating) if card.last_rating is not None else None,
        )


class ProgressResponse(BaseModel):
    """Derived progress of one phrase for display and sorting."""

    phrase_id: str
    progress_percentage: float
    state: State
    is_learned: bool

    @classmethod
    def from_progress(cls, phrase_id: str, progress: CardProgress) -> "ProgressResponse":
        return cls(
            phrase_id=phrase_id,
            progress_percentage=progress.progress_percentage,
            state=progress.state,
            is_learned=progress.is_learned,
        )


class ReviewRequest(BaseModel):
    """A rating for a phrase. Range is checked by the scheduler."""

    rating: int  # 1=Again, 2=Hard, 3=Good, 4=Easy
    response_time_ms: int | None = Field(default=None, ge=0)


class ReviewResponse(BaseModel):
    card: CardStudyResponse
    progress: ProgressResponse
    retrievability_before: float  # Recall probability at the time of the review


class DueCardResponse(BaseModel):
    phrase_id: str
    phrase: str
    translation: str
    due_date: datetime
    state: State
    reps: int


# --- Session ---


class SessionStartResponse(BaseModel):
    """Response when starting a new review session."""

    session_id: str
    user_id: str | None
    total_cards: int
    due_cards: int
    new_cards: int


class NextCardResponse(BaseModel):
    """The next phrase to review, with the interval each rating would give."""

    phrase_id: str
    phrase: str
    translation: str
    context: str | None = None
    is_new: bool
    progress: ProgressResponse
    next_intervals: dict[int, float]  # rating -> scheduled days
    remaining: int


class AnswerRequest(BaseModel):
    """Request to submit a rating for the current phrase."""

    phrase_id: str
    rating: int  # 1=Again, 2=Hard, 3=Good, 4=Easy
    response_time_ms: int = Field(default=0, ge=0)


class AnswerResponse(BaseModel):
    """Response after rating a phrase, with scheduling info."""

    applied_rating: int
    state: State
    next_due: datetime
    interval_days: float
    saved: bool  # False for guests
    remaining: int
    session_complete: bool


class SessionStatsResponse(BaseModel):
    """Statistics for the current review session."""

    cards_reviewed: int
    correct: int
    incorrect: int
    new_cards_seen: int
    accuracy: float
    average_time_ms: float


# --- Phrases ---


class PhraseCreateRequest(BaseModel):
    phrase: str = Field(min_length=1)
    translation: str = Field(min_length=1)
    context: str | None = None
    episode: str | None = None
    frequency: int = Field(default=1, ge=1)


class PhraseResponse(BaseModel):
    id: str
    phrase: str
    translation: str
    context: str | None = None
    episode: str | None = None
    frequency: int


class PhraseListItem(BaseModel):
    id: str
    phrase: str
    translation: str
    is_favorite: bool
    progress: ProgressResponse


class PhraseListResponse(BaseModel):
    total_phrases: int
    filtered_phrases: int
    phrases: list[PhraseListItem]


# --- Favorites ---


class FavoriteResponse(BaseModel):
    phrase_id: str
    created_at: datetime


# --- Stats ---


class StudyStatsResponse(BaseModel):
    """Overall study statistics for a user."""

    total: int
    new: int
    learning: int
    review: int
    relearning: int
    total_reviews: int
    total_lapses: int
    cards_due: int
    cards_learned: int
    average_retention: float | None  # Share of reviews rated >= Good in the last 30 days
    streak_days: int
