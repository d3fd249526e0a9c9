"""Configuration management and validation using Pydantic."""

import os
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseModel):
    """Cache policy handed to the user service at construction time."""
    ttl_ms: int = Field(600_000, gt=0)
    all_users_key: str = Field("all_users", min_length=1)
    user_key_prefix: str = Field("user_", min_length=1)
    enabled: bool = True


class Settings(BaseSettings):
    """Application configuration settings loaded from environment variables or .env files."""

    @staticmethod
    def get_env_file() -> str | None:
        """Pick the .env file for the current APP_ENV.

        Returns:
            None if SKIP_ENV_FILE is set (containers pass env vars directly)
            .env.{APP_ENV} otherwise (defaults to .env.dev)
        """
        if os.getenv("SKIP_ENV_FILE"):
            return None
        env = os.getenv("APP_ENV", "dev")
        env_file = f".env.{env}"
        if not os.path.exists(env_file):
            raise FileNotFoundError(
                f"Environment file '{env_file}' not found. "
                f"Copy .env.example to {env_file} or set SKIP_ENV_FILE=1."
            )
        return env_file

    model_config = SettingsConfigDict(
        env_file=get_env_file.__func__(),
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # ==================== Application Settings ====================
    APP_NAME: str = "User Service"
    APP_ENV: str = "dev"
    DB_URL: str  # Required, defined in .env files

    # ==================== Database Connection Pooling ====================
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30  # seconds
    DB_POOL_RECYCLE: int = 3600  # seconds

    # ==================== Database Health Checks ====================
    DB_RETRY_MAX_ATTEMPTS: int = 2
    DB_RETRY_BASE_DELAY: float = 0.1  # seconds, doubled per attempt
    DB_QUERY_TIMEOUT: int = 60  # seconds, asyncpg only
    DB_CONNECT_TIMEOUT: int = 10  # seconds, asyncpg only

    # ==================== CORS Settings ====================
    CORS_ORIGINS: str = "http://localhost:3000"  # Comma-separated

    # ==================== Field Validation ====================
    USER_NAME_MAX_LENGTH: int = 255
    USER_EMAIL_MAX_LENGTH: int = 255

    # ==================== Rate Limiting ====================
    RATE_LIMIT_WRITE: str = "60/minute"
    RATE_LIMIT_READ: str = "100/minute"

    # ==================== Graceful Shutdown ====================
    GRACEFUL_SHUTDOWN_TIMEOUT: int = 30  # seconds

    # ==================== Logging ====================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None  # e.g. "app.log"
    LOG_FORMAT: str = "console"  # "console" or "json" (file handler only)

    # ==================== Redis Caching ====================
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_TTL_MS: int = 600_000
    CACHE_ALL_USERS_KEY: str = "all_users"
    CACHE_USER_KEY_PREFIX: str = "user_"
    CACHE_ENABLED: bool = True
    CACHE_FAIL_OPEN: bool = False  # True: treat Redis errors as misses

    @field_validator('DB_URL')
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        """Validate that DB_URL points at a supported async driver."""
        if not v:
            raise ValueError("DB_URL is required but not provided in environment variables")
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DB_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v

    @field_validator('LOG_FORMAT')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ("console", "json"):
            raise ValueError("LOG_FORMAT must be 'console' or 'json'")
        return v

    def get_cors_origins(self) -> list[str]:
        """Parse CORS_ORIGINS into a list of allowed origins."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    def cache_settings(self) -> CacheSettings:
        """Build the cache policy passed into UserService."""
        return CacheSettings(
            ttl_ms=self.CACHE_TTL_MS,
            all_users_key=self.CACHE_ALL_USERS_KEY,
            user_key_prefix=self.CACHE_USER_KEY_PREFIX,
            enabled=self.CACHE_ENABLED,
        )

settings = Settings()
