"""SQLAlchemy ORM models for the LegendasPT database."""

from backend.models.base import Base
from backend.models.card_study import CardStudyRecord
from backend.models.favorite import Favorite
from backend.models.phrase import Phrase
from backend.models.review_log import ReviewLog
from backend.models.study_session import StudySession

__all__ = ["Base", "CardStudyRecord", "Favorite", "Phrase", "ReviewLog", "StudySession"]
