"""Caller identity.

Authentication happens upstream; the proxy in front of the API forwards the
authenticated user's id in the ``X-User-Id`` header and it is trusted as is.
"""

from fastapi import Depends, Header, HTTPException, status


async def get_current_user_id(
    x_user_id: str | None = Header(None, description="Authenticated user id"),
) -> str | None:
    """Return the caller's user id, or None for a guest."""
    if x_user_id is None:
        return None
    x_user_id = x_user_id.strip()
    return x_user_id or None


async def require_user_id(user_id: str | None = Depends(get_current_user_id)) -> str:
    """Return the caller's user id, rejecting guests."""
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sign in to track progress",
        )
    return user_id
