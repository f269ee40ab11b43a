"""Per-user FSRS scheduling state for a phrase."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class CardStudyRecord(Base, TimestampMixin):
    """Stored form of ``backend.srs.fsrs.CardStudy``, one row per (user, phrase)."""

    __tablename__ = "user_card_studies"
    __table_args__ = (UniqueConstraint("user_id", "phrase_id", name="uq_card_study_user_phrase"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phrase_id: Mapped[str] = mapped_column(ForeignKey("extracted_phrases.id"), nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    stability: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    difficulty: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    elapsed_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    scheduled_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    reps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lapses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default="New"
    )  # New, Learning, Review, Relearning
    last_review: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_rating: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )  # 1=Again, 2=Hard, 3=Good, 4=Easy

    phrase: Mapped["Phrase"] = relationship(back_populates="card_studies")  # type: ignore[name-defined] # noqa: F821
