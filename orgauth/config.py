"""
Application Configuration

Centralized configuration management using Pydantic settings.
Loads from environment variables with fallback to .env file.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Note: get_settings() is cached, so tests must set environment
    variables before the first import of orgauth (see tests/conftest.py)
    or call get_settings.cache_clear().
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    APP_NAME: str = "orgauth"

    # Database settings
    DATABASE_URL: str = "postgresql://localhost/orgauth_dev"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40

    # Credential hashing
    # bcrypt work factor. 12 in production; tests drop it to the minimum (4)
    BCRYPT_ROUNDS: int = 12

    # Sessions
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 24 * 7
    # Minimum age of last_accessed_at before a request bumps it again
    SESSION_REFRESH_INTERVAL_SECONDS: int = 60

    # Password reset
    PASSWORD_RESET_TOKEN_TTL_SECONDS: int = 60 * 60

    # Organization invitations
    INVITATION_TTL_DAYS: int = 7

    # Housekeeping sweep for expired sessions and reset tokens. 0 disables it.
    CLEANUP_INTERVAL_SECONDS: int = 900

    # Redis for rate limiting
    REDIS_URL: str = "redis://localhost:6379/0"

    # Application settings
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Browser origins allowed to send the session cookie cross-origin.
    # JSON list in the environment, e.g. CORS_ORIGINS='["https://app.example.com"]'
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Rate limiting on credential endpoints (per client IP)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PER_MINUTE: int = 10
    RATE_LIMIT_BURST: int = 5

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only instantiate settings once.
    """
    return Settings()
