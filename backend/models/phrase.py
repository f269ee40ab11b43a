import uuid

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class Phrase(Base, TimestampMixin):
    """A Portuguese phrase extracted from an episode's subtitles."""

    __tablename__ = "extracted_phrases"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    phrase: Mapped[str] = mapped_column(Text, nullable=False)  # Portuguese text
    translation: Mapped[str] = mapped_column(Text, nullable=False)  # English translation
    context: Mapped[str | None] = mapped_column(Text, nullable=True)  # Subtitle line it came from
    episode: Mapped[str | None] = mapped_column(
        String(200), nullable=True, index=True
    )  # e.g. "o-processo/episodio-3"
    frequency: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    card_studies: Mapped[list["CardStudyRecord"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="phrase", cascade="all, delete-orphan"
    )
    favorites: Mapped[list["Favorite"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="phrase", cascade="all, delete-orphan"
    )
