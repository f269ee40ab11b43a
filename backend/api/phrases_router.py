"""API routes for listing and adding phrases."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.auth import get_current_user_id
from backend.api.schemas import (
    PhraseCreateRequest,
    PhraseListItem,
    PhraseListResponse,
    PhraseResponse,
    ProgressResponse,
)
from backend.database import get_session
from backend.models.favorite import Favorite
from backend.models.phrase import Phrase
from backend.srs.progress import (
    FilterOption,
    PhraseProgress,
    SortOption,
    project_progress,
    sort_and_filter,
)
from backend.srs.repository import load_card_studies

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/phrases", tags=["phrases"])


@router.get("", response_model=PhraseListResponse)
async def list_phrases(
    episode: str | None = None,
    sort: SortOption = SortOption.NONE,
    filter: FilterOption = FilterOption.ALL,  # noqa: A002
    user_id: str | None = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> PhraseListResponse:
    """List phrases with the caller's progress and favorites, sorted and filtered."""
    stmt = select(Phrase).order_by(Phrase.created_at.asc(), Phrase.id.asc())
    if episode is not None:
        stmt = stmt.where(Phrase.episode == episode)
    phrases = list((await db.execute(stmt)).scalars().all())

    cards = {}
    favorite_ids: set[str] = set()
    if user_id is not None:
        cards = {
            card.phrase_id: card
            for card in await load_card_studies(db, user_id, episode=episode)
        }
        fav_stmt = select(Favorite.phrase_id).where(Favorite.user_id == user_id)
        favorite_ids = set((await db.execute(fav_stmt)).scalars().all())

    entries = [
        PhraseProgress(
            phrase_id=phrase.id,
            phrase=phrase.phrase,
            translation=phrase.translation,
            progress=project_progress(cards.get(phrase.id)),
            is_favorite=phrase.id in favorite_ids,
        )
        for phrase in phrases
    ]
    listed = sort_and_filter(entries, sort, filter)

    return PhraseListResponse(
        total_phrases=len(entries),
        filtered_phrases=len(listed),
        phrases=[
            PhraseListItem(
                id=entry.phrase_id,
                phrase=entry.phrase,
                translation=entry.translation,
                is_favorite=entry.is_favorite,
                progress=ProgressResponse.from_progress(entry.phrase_id, entry.progress),
            )
            for entry in listed
        ],
    )


@router.post("", response_model=PhraseResponse, status_code=201)
async def create_phrase(
    request: PhraseCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> PhraseResponse:
    """Add a phrase to the library."""
    phrase = Phrase(
        phrase=request.phrase.strip(),
        translation=request.translation.strip(),
        context=request.context,
        episode=request.episode,
        frequency=request.frequency,
    )
    db.add(phrase)
    await db.commit()
    logger.info("Added phrase %s (%s)", phrase.id, phrase.episode or "no episode")

    return PhraseResponse(
        id=phrase.id,
        phrase=phrase.phrase,
        translation=phrase.translation,
        context=phrase.context,
        episode=phrase.episode,
        frequency=phrase.frequency,
    )
