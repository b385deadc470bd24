"""
Application settings and configuration management.

This module handles all environment variables, API keys, and application
configuration using Pydantic settings management for type safety and validation.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All sensitive values are stored as SecretStr to prevent accidental logging.
    Settings are validated on load and cached for performance.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # API Keys
    anthropic_api_key: Optional[SecretStr] = Field(default=None, alias="ANTHROPIC_API_KEY")

    # Application Configuration
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        alias="APP_ENV"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        alias="LOG_LEVEL"
    )
    log_json: bool = Field(default=True, alias="LOG_JSON")
    log_file: Optional[Path] = Field(default=None, alias="LOG_FILE")

    # Completion Configuration
    claude_model: str = Field(
        default="claude-sonnet-4-20250514",
        alias="CLAUDE_MODEL"
    )
    completion_max_tokens: int = Field(default=4096, alias="COMPLETION_MAX_TOKENS")
    completion_temperature: float = Field(default=0.7, alias="COMPLETION_TEMPERATURE")
    completion_timeout_seconds: float = Field(default=60, alias="COMPLETION_TIMEOUT_SECONDS")

    # Retry Policy
    retry_max_attempts: int = Field(default=3, ge=1, alias="RETRY_MAX_ATTEMPTS")
    retry_initial_delay_seconds: float = Field(default=1.0, ge=0, alias="RETRY_INITIAL_DELAY_SECONDS")
    retry_backoff_multiplier: float = Field(default=2.0, ge=1, alias="RETRY_BACKOFF_MULTIPLIER")
    retry_max_delay_seconds: float = Field(default=30.0, ge=0, alias="RETRY_MAX_DELAY_SECONDS")

    # Scraping
    scrape_timeout_seconds: float = Field(default=30, alias="SCRAPE_TIMEOUT_SECONDS")
    scrape_user_agent: str = Field(default=DEFAULT_USER_AGENT, alias="SCRAPE_USER_AGENT")
    min_body_text_chars: int = Field(default=100, ge=0, alias="MIN_BODY_TEXT_CHARS")

    # Worker Pool
    max_concurrent_generations: int = Field(default=4, ge=1, alias="MAX_CONCURRENT_GENERATIONS")
    max_queued_generations: int = Field(default=100, ge=1, alias="MAX_QUEUED_GENERATIONS")

    # Storage
    data_dir: Path = Field(default=Path("data/generations"), alias="DATA_DIR")

    @field_validator("anthropic_api_key", mode="before")
    @classmethod
    def validate_anthropic_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate Anthropic API key format."""
        if v is None or v == "":
            return None
        if not str(v).startswith("sk-"):
            raise ValueError("Invalid Anthropic API key format")
        return v

    def has_completion_credentials(self) -> bool:
        """Whether a completion API key is configured."""
        return self.anthropic_api_key is not None


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
