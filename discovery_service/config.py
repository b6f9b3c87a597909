"""Application configuration using Pydantic BaseSettings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from discovery_service.constants import (
    CONTENT_SELECTOR_TIMEOUT_SECONDS,
    DEFAULT_ALLOWED_ORIGINS,
    DEFAULT_MAX_CONCURRENT_SCRAPES,
    DEFAULT_MAX_DISCOVERED_PAGES,
    DEFAULT_PORT,
    DEFAULT_RATE_LIMIT_MAX_REQUESTS,
    DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
    DEFAULT_SCRAPE_RATE_LIMIT_MAX_REQUESTS,
    DEFAULT_SCRAPE_RATE_LIMIT_WINDOW_SECONDS,
    PAGE_NAVIGATION_TIMEOUT_SECONDS,
    PDF_RENDER_TIMEOUT_SECONDS,
    SEED_NAVIGATION_TIMEOUT_SECONDS,
    SETTLE_DELAY_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        # Load .env first, then .env.local (for local/test overrides)
        # Later files override earlier ones, so .env.local takes precedence
        env_file=[".env", ".env.local"],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: Literal["local", "railway", "prod"] = Field(
        default="local", description="Current environment"
    )
    port: int = Field(default=DEFAULT_PORT, description="HTTP port for uvicorn")
    log_level: str = Field(default="INFO", description="Python logging level")

    # Sentry Configuration
    sentry_dsn: str | None = Field(
        default=None, description="Sentry DSN for error tracking (optional)"
    )
    sentry_traces_sample_rate: float = Field(
        default=1.0, description="Sentry traces sample rate (0.0 to 1.0)"
    )

    # Logfire Configuration
    logfire_token: str | None = Field(
        default=None, description="Pydantic Logfire token for cloud export"
    )

    # CORS
    allowed_origins: str = Field(
        default=DEFAULT_ALLOWED_ORIGINS,
        description="Comma-separated list of origins allowed by CORS",
    )

    # ==========================================================================
    # Rate Limiting Configuration
    # ==========================================================================

    rate_limit_max_requests: int = Field(
        default=DEFAULT_RATE_LIMIT_MAX_REQUESTS,
        ge=1,
        description="Max requests per client per general window (all routes)",
    )
    rate_limit_window_seconds: int = Field(
        default=DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
        ge=1,
        description="General rate limit window duration in seconds",
    )
    scrape_rate_limit_max_requests: int = Field(
        default=DEFAULT_SCRAPE_RATE_LIMIT_MAX_REQUESTS,
        ge=1,
        description="Max /scrape requests per client per scrape window",
    )
    scrape_rate_limit_window_seconds: int = Field(
        default=DEFAULT_SCRAPE_RATE_LIMIT_WINDOW_SECONDS,
        ge=1,
        description="Scrape rate limit window duration in seconds",
    )
    trust_forwarded_for: bool = Field(
        default=False,
        description="Key rate limits on the first X-Forwarded-For hop (behind a proxy)",
    )

    # ==========================================================================
    # Crawl & Browser Configuration
    # ==========================================================================
    # Defaults are sourced from discovery_service/constants.py.

    max_discovered_pages: int = Field(
        default=DEFAULT_MAX_DISCOVERED_PAGES,
        ge=0,
        description="Max relevant internal pages fetched besides the seed page",
    )
    max_concurrent_scrapes: int = Field(
        default=DEFAULT_MAX_CONCURRENT_SCRAPES,
        ge=1,
        description="Max browser sessions running at once in this process",
    )
    seed_navigation_timeout_seconds: float = Field(
        default=SEED_NAVIGATION_TIMEOUT_SECONDS,
        description="Timeout for the initial seed page load (seconds)",
    )
    page_navigation_timeout_seconds: float = Field(
        default=PAGE_NAVIGATION_TIMEOUT_SECONDS,
        description="Timeout for each discovered page load (seconds)",
    )
    content_selector_timeout_seconds: float = Field(
        default=CONTENT_SELECTOR_TIMEOUT_SECONDS,
        description="Wait for content to appear before extracting (seconds)",
    )
    settle_delay_seconds: float = Field(
        default=SETTLE_DELAY_SECONDS,
        ge=0,
        description="Fixed settle delay for client-side rendering (seconds)",
    )
    pdf_render_timeout_seconds: float = Field(
        default=PDF_RENDER_TIMEOUT_SECONDS,
        description="Timeout for loading HTML and reaching network idle (seconds)",
    )
    browser_headless: bool = Field(
        default=True, description="Run Chrome without a visible window"
    )
    chrome_version_main: int | None = Field(
        default=None,
        description="Chrome major version for chromedriver (e.g. 143)",
    )

    @property
    def allowed_origin_list(self) -> list[str]:
        """CORS origins parsed from the comma-separated setting."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
