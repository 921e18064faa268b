"""
Core configuration and settings for Permit Agent.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Permit Agent"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Logging
    log_json: bool = False
    log_level: str = "INFO"

    # Crawler
    crawler_max_depth: int = 3
    crawler_max_pages: int = 25
    crawler_request_delay: float = 1.5  # seconds between page fetches
    crawler_links_per_page: int = 10
    crawler_user_agent: str = (
        "Mozilla/5.0 (compatible; PermitAgent/1.0; +https://github.com/permit-agent/permit-agent)"
    )
    respect_robots_txt: bool = True

    # Timeouts (seconds), chosen per URL type
    timeout_default: float = 15.0
    timeout_government: float = 20.0
    timeout_api: float = 30.0
    head_timeout: float = 15.0

    # Retry
    retry_max_attempts: int = 3
    retry_backoff_base: float = 1.0
    retry_backoff_max: float = 30.0
    retry_jitter: float = 0.1

    # Outbound rate limiting (requests per second across the process)
    rate_limit_per_second: float = 5.0

    # Cache
    cache_max_size: int = 1000
    cache_default_ttl_hours: int = 24
    cache_sweep_interval_seconds: int = 3600
    # Larger bodies and binary documents are never kept in the fetch tier
    cache_max_body_bytes: int = 2 * 1024 * 1024

    # URL discovery
    validation_concurrency: int = Field(default=10, ge=1)

    # Pipeline caps
    max_documents_analyzed: int = 5
    max_flows_mapped: int = 3
    max_systems_probed: int = 2

    # Flow mapper
    flow_max_depth: int = 5
    flow_step_delay: float = 1.0

    # Text understanding service (any OpenAI-compatible endpoint)
    ai_api_url: str | None = None
    ai_api_key: str | None = None
    ai_model: str | None = None
    ai_max_content_chars: int = 45000
    ai_retries: int = 3
    ai_backoff: int = 4

    @property
    def ai_enabled(self) -> bool:
        """AI parsing is enabled only when an endpoint and model are configured."""
        return bool(self.ai_api_url and self.ai_model)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"invalid log level: {v}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
