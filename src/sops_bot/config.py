"""Bot configuration using pydantic-settings.

This module defines the BotSettings class that reads configuration from
environment variables with the SOPS_BOT_ prefix. ``SOPS_BOT_GITHUB_TOKEN``
must be set for the bot to start.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.sops_bot.committer.public_key import DEFAULT_COMMIT_MESSAGE
from src.sops_bot.keys.generator import (
    DEFAULT_KEY_COMMENT,
    DEFAULT_KEY_EMAIL,
    DEFAULT_KEY_LENGTH,
)

MIN_KEY_LENGTH = 2048
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class BotSettings(BaseSettings):
    """Bot configuration from environment variables.

    All environment variables are prefixed with SOPS_BOT_
    (e.g., SOPS_BOT_GITHUB_TOKEN).
    """

    model_config = SettingsConfigDict(
        env_prefix="SOPS_BOT_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    # Token with contents:write and secrets:write on target repositories
    github_token: str

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    github_timeout_seconds: float = 30.0

    # Retries for transient failures (timeouts, 5xx)
    github_max_retries: int = 3

    # -------------------------------------------------------------------------
    # Key Generation
    # -------------------------------------------------------------------------
    gpg_binary: str = "gpg"
    gpg_key_length: int = DEFAULT_KEY_LENGTH
    gpg_key_comment: str = DEFAULT_KEY_COMMENT
    # Placeholder; the key is never used for mail
    gpg_key_email: str = DEFAULT_KEY_EMAIL

    commit_message: str = DEFAULT_COMMIT_MESSAGE

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_token")
    @classmethod
    def validate_github_token(cls, v: str) -> str:
        """Validate that GitHub token is not empty."""
        if not v or not v.strip():
            raise ValueError("github_token cannot be empty")
        return v

    @field_validator("github_base_url")
    @classmethod
    def validate_github_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_base_url must start with http:// or https://")
        return v

    @field_validator("github_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("github_timeout_seconds must be positive")
        return v

    @field_validator("github_max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("github_max_retries cannot be negative")
        return v

    @field_validator("gpg_key_length")
    @classmethod
    def validate_key_length(cls, v: int) -> int:
        """Validate that the RSA key length is not weaker than 2048 bits."""
        if v < MIN_KEY_LENGTH:
            raise ValueError(f"gpg_key_length must be at least {MIN_KEY_LENGTH}")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level


def get_settings() -> BotSettings:
    """Create and return a BotSettings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return BotSettings()
