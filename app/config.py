"""Application configuration models."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="CineSync", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_bearer_token: str | None = Field(default=None, alias="TMDB_BEARER_TOKEN")
    tmdb_language: str = Field(default="es-ES", alias="TMDB_LANGUAGE")
    tmdb_timeout_seconds: float = Field(
        default=10.0, alias="TMDB_TIMEOUT_SECONDS", gt=0, le=120
    )

    staleness_window_seconds: int = Field(
        default=86_400, alias="STALENESS_WINDOW_SECONDS", ge=60
    )
    default_page_limit: int = Field(
        default=20, alias="DEFAULT_PAGE_LIMIT", ge=1, le=100
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./cinesync.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_language", mode="before")
    @classmethod
    def _normalise_language(cls, value: object) -> str:
        """Fall back to the default locale when the variable is left blank."""

        if value is None:
            return "es-ES"
        cleaned = str(value).strip()
        return cleaned or "es-ES"

    @field_validator("tmdb_bearer_token", mode="before")
    @classmethod
    def _blank_token_is_missing(cls, value: object) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @property
    def staleness_window(self) -> timedelta:
        """Return how long a stored record stays fresh."""

        return timedelta(seconds=self.staleness_window_seconds)

    @property
    def tmdb_base_url(self) -> str:
        """Return the TMDB base URL without a trailing slash."""

        return str(self.tmdb_api_url).rstrip("/")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
