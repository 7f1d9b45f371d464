"""
Service configuration.

Reads from environment variables (prefixed ``KMT_``) or a local ``.env`` file.
``DATABASE_URL`` is honoured as well so the usual hosting conventions work.
"""
from functools import lru_cache
from typing import List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """KMT service settings."""

    # SQLite locally, PostgreSQL in production
    database_url: str = Field(
        default="sqlite:///./kmt.db",
        validation_alias=AliasChoices("KMT_DATABASE_URL", "DATABASE_URL"),
    )
    log_level: str = "INFO"
    api_prefix: str = "/api/v1"
    cors_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_prefix="KMT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("database_url")
    @classmethod
    def _normalize_postgres_scheme(cls, value: str) -> str:
        # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
        if value.startswith("postgres://"):
            return value.replace("postgres://", "postgresql://", 1)
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
