from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Toolcrib"
    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    DB_URL: str = Field(
        default="sqlite:///./toolcrib.db",
        validation_alias=AliasChoices("DB_URL", "DATABASE_URL"),
    )
    # Ignored for SQLite URLs; SQLAlchemy picks its own pool there.
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 0
    DB_POOL_TIMEOUT: int = 30

    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 60 * 24
    JWT_REFRESH_TTL_DAYS: int = 7
    # Comma separated, e.g. "http://localhost:5173,https://crib.example.com"
    ALLOWED_ORIGINS: str = ""

    # First administrator, created at startup when both values are present.
    BOOTSTRAP_ADMIN_DOCUMENT: str | None = None
    BOOTSTRAP_ADMIN_PASSWORD: str | None = None
    BOOTSTRAP_ADMIN_NAME: str = "Administrator"
    BOOTSTRAP_ADMIN_EMAIL: str = "admin@localhost"

    HOST: str = "0.0.0.0"
    PORT: int = 8089

    @property
    def allowed_origins(self) -> list[str]:
        return [item.strip() for item in self.ALLOWED_ORIGINS.split(",") if item.strip()]

    @property
    def bootstrap_enabled(self) -> bool:
        return bool(self.BOOTSTRAP_ADMIN_DOCUMENT and self.BOOTSTRAP_ADMIN_PASSWORD)

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, value: Any) -> str:
        return str(value or "INFO").strip().upper()


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()


settings = get_settings()
