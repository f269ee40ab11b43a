"""Shared fixtures: a throwaway SQLite database and an API client."""

import os
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path

# Must be set before backend.config is imported
_DB_DIR = Path(tempfile.mkdtemp(prefix="legendaspt-tests-"))
os.environ["LEGENDAS_DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR / 'test.db'}"

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from backend.database import async_session, engine  # noqa: E402
from backend.main import app  # noqa: E402
from backend.models import Base, Phrase  # noqa: E402


@pytest_asyncio.fixture
async def db() -> AsyncIterator[AsyncSession]:
    """A session on freshly created tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with async_session() as session:
        yield session
    # Connections belong to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture
async def client(db: AsyncSession) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def add_phrases(db: AsyncSession):
    """Return a helper inserting (phrase, translation) pairs."""

    async def _add(*texts: tuple[str, str], episode: str | None = None) -> list[Phrase]:
        phrases = [Phrase(phrase=p, translation=t, episode=episode) for p, t in texts]
        db.add_all(phrases)
        await db.commit()
        return phrases

    return _add
