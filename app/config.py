"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MODEL = "gemini-2.5-flash-lite"


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Theater AI", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default=DEFAULT_MODEL, alias="GEMINI_MODEL")
    gemini_api_url: HttpUrl = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="GEMINI_API_URL",
    )

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )

    generation_max_retries: int = Field(
        default=4, alias="GENERATION_MAX_RETRIES", ge=0, le=10
    )
    generation_backoff_seconds: float = Field(
        default=0.6, alias="GENERATION_BACKOFF", ge=0
    )
    generation_jitter_seconds: float = Field(
        default=0.25, alias="GENERATION_JITTER", ge=0
    )

    cache_capacity: int = Field(default=100, alias="CACHE_CAPACITY", ge=1)
    memory_cache_seconds: int = Field(
        default=86_400, alias="MEMORY_CACHE_TTL", ge=1
    )
    personalization_ttl_seconds: int = Field(
        default=180 * 86_400, alias="PERSONALIZATION_TTL", ge=60
    )

    enrichment_concurrency: int = Field(
        default=1, alias="ENRICHMENT_CONCURRENCY", ge=1, le=4
    )
    enrichment_timeout_seconds: float = Field(
        default=10.0, alias="ENRICHMENT_TIMEOUT", gt=0
    )
    popularity_cap: float = Field(default=100.0, alias="POPULARITY_CAP", gt=0)

    database_url: str = Field(
        default="sqlite+aiosqlite:///./theater_ai.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("gemini_api_key", "tmdb_api_key", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


class AISettings(BaseModel):
    """Read-only view of the generation settings for a single call."""

    model_config = ConfigDict(frozen=True)

    model: str = DEFAULT_MODEL
    api_key: str | None = None


class SettingsProvider(Protocol):
    async def get_settings(self) -> AISettings: ...


class EnvironmentSettingsProvider:
    """Serve generation settings straight from the process configuration."""

    def __init__(self, settings: Settings):
        self._settings = settings

    async def get_settings(self) -> AISettings:
        return AISettings(
            model=self._settings.gemini_model or DEFAULT_MODEL,
            api_key=self._settings.gemini_api_key,
        )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
