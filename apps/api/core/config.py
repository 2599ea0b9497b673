"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Backend selection: "remote" (SQL database + Stripe + OpenAI) or "local" (JSON blob on disk)
    DATA_SOURCE: str = Field(default="local")

    # Local-storage mode: directory holding the key-value files
    LOCAL_STORAGE_DIR: str = Field(default=".fitcoach")
    LOCAL_SEED_DEMO_DATA: bool = Field(default=True)

    # Database Configuration (remote mode)
    DATABASE_URL: str = Field(default="sqlite:///./fitcoach.db")
    DB_POOL_SIZE: int = Field(default=20)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration (shared rate-limit counters)
    REDIS_URL: str = Field(default="redis://localhost:6379/0")

    # JWT Authentication - REQUIRED for token signing
    # Must be set via environment variable, never use default in production
    SECRET_KEY: str = Field(
        default=...,  # Required - no default
        description="JWT signing key. Must be cryptographically secure (32+ chars). "
                    "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=24 * 60)  # sessions last 24 hours
    BCRYPT_ROUNDS: int = Field(default=12, ge=4, le=16)

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_PER_MINUTE: int = Field(default=100)
    RATE_LIMIT_WINDOW_S: int = Field(default=60)

    # Cached queries (hooks)
    QUERY_STALE_TIME_S: float = Field(default=30.0)

    # Stripe (hosted checkout)
    STRIPE_SECRET_KEY: Optional[str] = Field(default=None)
    STRIPE_PRICE_PRO_MONTHLY_ID: Optional[str] = Field(default=None)
    STRIPE_PRICE_PRO_YEARLY_ID: Optional[str] = Field(default=None)
    STRIPE_PRICE_ELITE_MONTHLY_ID: Optional[str] = Field(default=None)
    STRIPE_PRICE_ELITE_YEARLY_ID: Optional[str] = Field(default=None)
    STRIPE_CHECKOUT_SUCCESS_URL: Optional[str] = Field(default=None)
    STRIPE_CHECKOUT_CANCEL_URL: Optional[str] = Field(default=None)
    STRIPE_WEBHOOK_SECRET: Optional[str] = Field(default=None)

    # OpenAI
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_MODEL: str = Field(default="gpt-4o-mini")
    OPENAI_MAX_TOKENS: int = Field(default=2000)
    OPENAI_TEMPERATURE: float = Field(default=0.7)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Web app base URL (checkout redirects back to the UI)
    WEB_APP_BASE_URL: str = Field(default="http://localhost:5173")

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)  # 10% of transactions


# Global settings instance
settings = Settings()
