from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(..., alias="DATABASE_URL")
    db_schema: str | None = Field(default="labquote", alias="DB_SCHEMA")
    cors_origins_raw: str | list[str] = Field(default_factory=list, alias="CORS_ORIGINS")
    timezone: str = Field(default="Africa/Casablanca", alias="TIMEZONE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    currency: str = Field(default="MAD", alias="CURRENCY")

    # Pagination for registry listings
    page_size_default: int = Field(default=20, alias="PAGE_SIZE_DEFAULT")
    page_size_max: int = Field(default=100, alias="PAGE_SIZE_MAX")

    # Cache TTL settings (seconds)
    cache_catalog_summary_ttl: int = Field(default=300, alias="CACHE_CATALOG_SUMMARY_TTL")

    # Database pool settings (PostgreSQL only)
    db_pool_size: int = Field(default=10, alias="DB_POOL_SIZE")
    db_pool_max_overflow: int = Field(default=20, alias="DB_POOL_MAX_OVERFLOW")
    db_pool_recycle: int = Field(default=3600, alias="DB_POOL_RECYCLE")
    db_pool_timeout: int = Field(default=30, alias="DB_POOL_TIMEOUT")

    @field_validator("cors_origins_raw", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, list):
            parsed = [str(item).rstrip("/") for item in value]
        elif isinstance(value, str):
            parsed = [origin.strip().rstrip("/") for origin in value.split(",") if origin.strip()]
        else:
            parsed = []
        return sorted(set(parsed))

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return str(value).strip().upper() or "INFO"

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, value: str) -> str:
        return str(value).strip().upper()

    @field_validator("page_size_default", "page_size_max")
    @classmethod
    def ensure_positive_page_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("page sizes must be positive")
        return value

    @property
    def cors_origins(self) -> list[str]:
        return self.cors_origins_raw  # type: ignore[return-value]


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]


__all__ = ["Settings", "get_settings"]
