"""
config/settings.py
Application settings loaded from environment variables.
Uses Pydantic BaseSettings for validation and type safety.
"""

from functools import lru_cache
from typing import List
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    APP_NAME: str = "SpotSure Directory"
    APP_ENV: str = "development"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    SECRET_KEY: str

    # ── Server ───────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 5000
    WORKERS: int = 4

    # ── Database ─────────────────────────────────────────────
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40
    DATABASE_POOL_TIMEOUT: int = 30

    # ── Redis ────────────────────────────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"

    # ── Session ──────────────────────────────────────────────
    SESSION_COOKIE: str = "spotsure_session"
    SESSION_MAX_AGE_DAYS: int = 14

    # ── Frontend ─────────────────────────────────────────────
    ALLOWED_ORIGINS: str = "http://localhost:5000"

    # ── Media / Image Storage ────────────────────────────────
    MEDIA_ROOT: str = "./media"
    IMAGE_MAX_BYTES: int = 5 * 1024 * 1024
    IMAGE_UPLOAD_TIMEOUT_SECONDS: float = 10.0
    MAX_REVIEW_IMAGES: int = 5
    IMAGE_BREAKER_FAIL_MAX: int = 5
    IMAGE_BREAKER_RESET_TIMEOUT: int = 60

    # ── Celery ───────────────────────────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # ── Rate Limiting ────────────────────────────────────────
    RATE_LIMIT_UNAUTH_PER_MINUTE: int = 120

    # ── Business Config ──────────────────────────────────────
    DEFAULT_CATEGORY: str = "Service"
    CATEGORY_ALL_SENTINEL: str = "all"
    DELETE_CODE_LENGTH: int = 6

    @field_validator("DELETE_CODE_LENGTH")
    @classmethod
    def validate_delete_code_length(cls, v: int) -> int:
        if v < 6:
            raise ValueError("DELETE_CODE_LENGTH must be at least 6")
        return v

    @property
    def allowed_origins_list(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
