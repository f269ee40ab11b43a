"""API routes for a user's favorite phrases."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.auth import require_user_id
from backend.api.schemas import FavoriteResponse
from backend.database import get_session
from backend.models.favorite import Favorite
from backend.models.phrase import Phrase

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/favorites", tags=["favorites"])


@router.get("", response_model=list[FavoriteResponse])
async def list_favorites(
    user_id: str = Depends(require_user_id),
    db: AsyncSession = Depends(get_session),
) -> list[FavoriteResponse]:
    """List the user's favorites, newest first."""
    stmt = (
        select(Favorite)
        .where(Favorite.user_id == user_id)
        .order_by(Favorite.created_at.desc(), Favorite.id.desc())
    )
    favorites = (await db.execute(stmt)).scalars().all()
    return [FavoriteResponse(phrase_id=f.phrase_id, created_at=f.created_at) for f in favorites]


@router.post("/{phrase_id}", response_model=FavoriteResponse, status_code=201)
async def add_favorite(
    phrase_id: str,
    user_id: str = Depends(require_user_id),
    db: AsyncSession = Depends(get_session),
) -> FavoriteResponse:
    """Mark a phrase as favorite. Adding an existing favorite returns it unchanged."""
    if await db.get(Phrase, phrase_id) is None:
        raise HTTPException(status_code=404, detail="Phrase not found")

    stmt = select(Favorite).where(and_(Favorite.user_id == user_id, Favorite.phrase_id == phrase_id))
    favorite = (await db.execute(stmt)).scalar_one_or_none()
    if favorite is None:
        favorite = Favorite(user_id=user_id, phrase_id=phrase_id)
        db.add(favorite)
        await db.commit()
        logger.info("User %s favorited phrase %s", user_id, phrase_id)

    return FavoriteResponse(phrase_id=favorite.phrase_id, created_at=favorite.created_at)


@router.delete("/{phrase_id}", status_code=204)
async def remove_favorite(
    phrase_id: str,
    user_id: str = Depends(require_user_id),
    db: AsyncSession = Depends(get_session),
) -> None:
    """Remove a phrase from the user's favorites."""
    stmt = delete(Favorite).where(and_(Favorite.user_id == user_id, Favorite.phrase_id == phrase_id))
    result = await db.execute(stmt)
    await db.commit()
    if result.rowcount == 0:
        raise HTTPException(status_code=404, detail="Not a favorite")
