"""Application configuration and settings management.

This module defines the application settings loaded from environment
variables and provides helpers for accessing the cached settings and
configuring logging.
"""

import logging
from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


MatchPolicy = Literal["discovery", "email_first", "name_first"]


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        DATABASE_URL: Database connection string.
        API_PREFIX: Path prefix all REST routes are mounted under.
        ALLOWED_ORIGINS: Allowed origins for CORS.
        ENVIRONMENT: Deployment environment; ``production`` redacts
            internal error messages.
        LOG_LEVEL: Root logging level.
        DUPLICATE_MATCH_POLICY: Order in which name and email matches are
            combined when picking the merge target during import.
        IMPORT_DECISION_TIMEOUT_SECONDS: Age after which an unanswered merge
            decision is treated as a skip.
        IMPORT_SESSION_TTL_SECONDS: Idle time after which an import session
            is discarded.
        SQLITE_BUSY_TIMEOUT_SECONDS: How long SQLite waits on a locked
            database before giving up.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    DATABASE_URL: str = "sqlite:///./kontakthub.db"
    API_PREFIX: str = "/api/v1"
    ALLOWED_ORIGINS: List[str] = ["*"]
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    DUPLICATE_MATCH_POLICY: MatchPolicy = "discovery"
    IMPORT_DECISION_TIMEOUT_SECONDS: int = 15 * 60
    IMPORT_SESSION_TTL_SECONDS: int = 60 * 60
    SQLITE_BUSY_TIMEOUT_SECONDS: int = 5

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Install the root log handler.

    Args:
        level (str | None): Level name; defaults to ``LOG_LEVEL``.
    """
    logging.basicConfig(
        level=(level or get_settings().LOG_LEVEL).upper(),
        format="%(levelname)s: %(name)s: %(message)s",
    )
