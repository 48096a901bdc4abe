"""Configuration management for the subtitle translation service."""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore"
    )

    # Redis Configuration
    redis_url: str = Field(default="redis://localhost:6379")
    redis_key_prefix: str = Field(default="translation")
    redis_reconnect_max_retries: int = Field(default=3)
    redis_reconnect_initial_delay: float = Field(default=1.0)
    redis_reconnect_max_delay: float = Field(default=10.0)

    # API Configuration
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    cors_allowed_origins: str = Field(default="http://localhost:3000")

    # Logging
    log_level: str = Field(default="INFO")
    log_to_file: bool = Field(default=False)

    # Subtitle Sources - OpenSubtitles (REST)
    opensubtitles_api_url: str = Field(default="https://api.opensubtitles.com/api/v1")
    opensubtitles_api_key: Optional[str] = Field(default=None)
    opensubtitles_user_agent: str = Field(default="burmese-subtitle-translator v1.0")
    opensubtitles_search_language: str = Field(default="en")
    opensubtitles_timeout: float = Field(default=30.0)
    opensubtitles_max_retries: int = Field(default=3)
    opensubtitles_retry_delay: float = Field(default=1.0)
    opensubtitles_retry_max_delay: float = Field(
        default=30.0
    )  # Maximum backoff delay in seconds
    opensubtitles_retry_exponential_base: int = Field(default=2)

    # Translation model (any OpenAI-compatible chat completions endpoint)
    openai_api_key: Optional[str] = Field(default=None)
    openai_base_url: Optional[str] = Field(default=None)
    openai_model: str = Field(default="gpt-4o-mini")
    openai_temperature: float = Field(default=0.0)  # Deterministic decoding
    openai_max_tokens: int = Field(
        default=16384
    )  # Burmese script is token-heavy, leave room for the whole batch
    openai_request_timeout: float = Field(default=120.0)

    # Translation gateway
    translation_target_language: str = Field(default="Burmese")
    translation_max_retries: int = Field(
        default=2
    )  # Extra attempts after the first call
    translation_retry_delay: float = Field(default=1.0)

    # Batching
    translation_batch_size: int = Field(default=25)
    translation_max_auto_lines: int = Field(
        default=1000
    )  # Lines past this ceiling are left for manual editing
    translation_batch_timeout: float = Field(default=300.0)

    # Recovery
    job_reconcile_on_startup: bool = Field(default=True)

    @field_validator("translation_batch_size", "translation_max_auto_lines")
    @classmethod
    def validate_positive_limit(cls, v: int) -> int:
        """
        Ensure batching limits are positive.

        Args:
            v: Configured limit

        Returns:
            The limit unchanged

        Raises:
            ValueError: If the limit is zero or negative
        """
        if v < 1:
            raise ValueError("batching limits must be at least 1")
        return v

    @field_validator("translation_max_retries", "opensubtitles_max_retries")
    @classmethod
    def validate_non_negative_retries(cls, v: int) -> int:
        """Ensure retry counts are not negative."""
        if v < 0:
            raise ValueError("retry counts cannot be negative")
        return v

    def get_cors_origins(self) -> List[str]:
        """Parse the comma-separated CORS origin list."""
        origins = [
            origin.strip()
            for origin in self.cors_allowed_origins.split(",")
            if origin.strip()
        ]
        return origins or ["http://localhost:3000"]


# Global settings instance
settings = Settings()
