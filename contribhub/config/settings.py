"""Application settings via Pydantic BaseSettings."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings

from contribhub.exceptions import ConfigError

SESSION_HEADER = "X-Session-ID"


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Central directory store
    database_url: str = "sqlite+aiosqlite:///./contribhub.db"
    use_database: bool = False  # Set True to keep the directory in SQL instead of memory

    # App
    debug: bool = False
    log_level: str = "INFO"
    allowed_origins: list[str] = ["http://localhost:8000"]

    # Navigation targets for failed tenant resolution
    login_path: str = "/login"
    directory_path: str = "/organizations"

    # Tenant databases
    tenant_ping_on_connect: bool = True
    default_tenant_currency: str = "KSH"
    default_fiscal_year_start: str = "January"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    settings = Settings()
    if settings.use_database and not settings.database_url:
        msg = "USE_DATABASE=true requires DATABASE_URL"
        raise ConfigError(msg)
    return settings
