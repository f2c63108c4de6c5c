from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Company Enrichment Service"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # LLM provider
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    enrichment_model: str = "gpt-4o-mini"
    enrichment_temperature: float = 0.3
    enrichment_max_output_tokens: int = 1024
    enrichment_llm_timeout_seconds: float = 20.0
    enrichment_llm_max_retries: int = 0

    # Scraper
    scrape_fetch_timeout_seconds: float = 7.0
    scrape_max_attempts: int = 3
    scrape_backoff_base_seconds: float = 0.3
    scrape_backoff_max_seconds: float = 2.0
    scrape_max_chars_per_page: int = 3_000
    scrape_max_total_chars: int = 10_000
    scrape_min_chars_per_page: int = 50
    enrichment_min_content_chars: int = 100

    # Request throttle
    enrich_rate_limit_max_requests: int = 5
    enrich_rate_limit_window_seconds: int = 60

    # Security
    cors_origins: list[str] = []  # Empty by default for security

    # Sentry
    sentry_dsn: str | None = None

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "enrichment"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def llm_configured(self) -> bool:
        """True when an API key for the extraction backend is present."""
        return bool(self.openai_api_key and self.openai_api_key.strip())

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
