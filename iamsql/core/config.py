"""
core/config.py
--------------
Centralised settings management using pydantic-settings.
All configuration is loaded from environment variables / .env file.
This is the single source of truth for the directory configuration.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── App ──────────────────────────────────────────────────────────────
    APP_NAME: str = "SQL Identity Directory"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # ── Database ─────────────────────────────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./iamsql.db"

    # ── Credentials ──────────────────────────────────────────────────────
    SALT_LENGTH: int = 64
    HASH_ITERATION: int = 10
    KEY_LENGTH: int = 256  # bits
    KEY_ALG: str = "PBKDF2WithHmacSHA512"

    # ── Directory ────────────────────────────────────────────────────────
    QUARANTINE_DN: str = "ou=quarantine"
    CACHE_TTL_SECONDS: float = 0  # 0 keeps the snapshot until cleared

    @field_validator("QUARANTINE_DN", mode="before")
    @classmethod
    def lower_dn(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings factory.
    Use this everywhere to avoid re-reading .env on every call.
    """
    return Settings()


settings = get_settings()
