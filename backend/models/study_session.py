import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, TimestampMixin


class StudySession(Base, TimestampMixin):
    __tablename__ = "user_study_sessions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    episode: Mapped[str | None] = mapped_column(String(200), nullable=True)
    session_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="mixed"
    )  # new, review, mixed
    total_cards: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cards_studied: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cards_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    session_duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
