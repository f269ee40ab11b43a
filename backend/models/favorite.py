from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class Favorite(Base, TimestampMixin):
    __tablename__ = "user_favorites"
    __table_args__ = (UniqueConstraint("user_id", "phrase_id", name="uq_favorite_user_phrase"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phrase_id: Mapped[str] = mapped_column(ForeignKey("extracted_phrases.id"), nullable=False)

    phrase: Mapped["Phrase"] = relationship(back_populates="favorites")  # type: ignore[name-defined] # noqa: F821
