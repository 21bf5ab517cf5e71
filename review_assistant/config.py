"""
Configuration module for the Code Review Assistant.

Loads environment variables and provides centralized settings.
All secrets and configuration are managed through environment variables.
"""

from typing import List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Secrets are loaded from environment or .env file.
    Never commit secrets to version control.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    ENVIRONMENT: str = Field(default="development")
    PORT: int = Field(default=8000)
    ALLOWED_ORIGINS: str = Field(default="*")

    # LLM Configuration
    LLM_PROVIDER: str = Field(default="anthropic")
    ANTHROPIC_API_KEY: str = Field(default="")
    OPENAI_API_KEY: str = Field(default="")
    LLM_MODEL: str = Field(default="claude-sonnet-4-20250514")
    LLM_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0)
    LLM_MAX_RETRIES: int = Field(default=3, ge=1)

    # Review prompts favor grammar compliance, chat favors natural prose
    REVIEW_MAX_TOKENS: int = Field(default=2000, ge=1)
    REVIEW_TEMPERATURE: float = Field(default=0.1, ge=0.0, le=2.0)
    CHAT_MAX_TOKENS: int = Field(default=1000, ge=1)
    CHAT_TEMPERATURE: float = Field(default=0.7, ge=0.0, le=2.0)

    # Conversation
    HISTORY_WINDOW: int = Field(default=10, ge=0)
    SESSION_IDLE_SECONDS: int = Field(default=1800, ge=1)

    # Storage
    DATABASE_PATH: str = Field(default="review_assistant.db")
    STORAGE_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)

    # AWS S3 review archive (disabled when no bucket is set)
    AWS_REGION: str = Field(default="us-east-1")
    AWS_ACCESS_KEY_ID: str = Field(default="")
    AWS_SECRET_ACCESS_KEY: str = Field(default="")
    S3_BUCKET_NAME: str = Field(default="")
    S3_REVIEWS_PREFIX: str = Field(default="reviews/")

    # Observability
    LOG_LEVEL: str = Field(default="INFO")
    SENTRY_DSN: str = Field(default="")
    ERROR_TRACKING_ENABLED: bool = Field(default=True)
    METRICS_ENABLED: bool = Field(default=True)

    @field_validator("LLM_PROVIDER")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        """Provider names are matched case-insensitively."""
        return v.strip().lower()

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def allowed_origins(self) -> List[str]:
        """Parse comma-separated ALLOWED_ORIGINS into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def s3_enabled(self) -> bool:
        return bool(self.S3_BUCKET_NAME)


# Global settings instance
settings = Settings()
