"""
Configuration management for toolrelay.

This module provides a Settings class that loads configuration from environment
variables (prefix ``TOOLRELAY_``) or a ``.env`` file. Settings are passed
explicitly to the transport, tools and conversations that need them; nothing
reads configuration from module scope.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Completion endpoint
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int | None = None
    request_timeout: float = 60.0

    # Retry / budget policy
    max_attempts: int = 5
    backoff_unit: float = 1.0  # seconds; delay is backoff_unit * 2**attempt
    call_ceiling: int = 30

    # Browsing (Google Programmable Search)
    search_api_key: str | None = None
    search_engine_id: str | None = None
    search_results: int = 5
    page_max_chars: int = 10000

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="TOOLRELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @property
    def browsing_configured(self) -> bool:
        """True when both search credentials are present."""
        return bool(self.search_api_key and self.search_engine_id)


def get_settings() -> Settings:
    """Get the application settings instance."""
    return Settings()
