import functools
from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Keeps datetimes naive so they stay compatible with SQLite (which doesn't
    store tz info) and compare cleanly with values read back from the store.
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Adaptive Learning Engine"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'adaptive_engine.db'}"
    due_threshold: float = 0.7
    max_interval_days: int = 365
    profile_cache_ttl_seconds: float = 0.0  # 0 disables expiry
    profile_cache_max_entries: int = 1024
    debug: bool = False

    model_config = SettingsConfigDict(env_prefix="ADAPTIVE_ENGINE_", env_file=".env", extra="ignore")


@functools.lru_cache
def get_settings() -> Settings:
    """Return the shared settings instance."""
    return Settings()


settings = get_settings()
