from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "LegendasPT"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'legendaspt.db'}"
    target_retention: float = 0.9
    maximum_interval_days: int = 36500
    graduation_days: float = 1.0  # Learning -> Review once the interval reaches this
    max_new_cards_per_session: int = 10
    max_reviews_per_session: int = 20
    default_user_id: str = "local"  # Identity used by the CLI
    log_level: str = "INFO"
    debug: bool = False

    model_config = {"env_prefix": "LEGENDAS_", "env_file": ".env"}


settings = Settings()
