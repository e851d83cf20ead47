"""Application configuration using Pydantic settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/recsync"

    # MediaSense recording platform (sync is disabled until base URL is set)
    mediasense_base_url: str | None = None
    mediasense_username: str | None = None
    mediasense_password: str | None = None
    mediasense_allow_self_signed: bool = False
    mediasense_timeout_seconds: float = 10.0
    mediasense_max_retries: int = 2

    # OpenSearch secondary index (indexing is disabled until URL is set)
    opensearch_url: str | None = None
    opensearch_username: str | None = None
    opensearch_password: str | None = None
    opensearch_index_prefix: str = "recordings"

    # Incremental sync
    sync_type: str = "mediasense_recordings"
    sync_poll_interval_minutes: int = 5
    sync_overlap_minutes: int = 30  # Re-fetch window for maturing sessions
    sync_default_lookback_hours: int = 24
    sync_future_fallback_days: int = 7
    sync_page_size: int = 100
    sync_max_pages_per_run: int = 50
    sync_page_delay_ms: int = 100
    sync_history_limit: int = 10

    # Backfill
    backfill_retention_days: int = 180
    backfill_batch_days: int = 1
    backfill_max_batches_per_run: int = 7

    # API settings
    api_v1_prefix: str = "/api/v1"
    cors_origins: list[str] = ["*"]  # Restrict in production
    rate_limit_per_minute: int = 60

    # Environment
    debug: bool = False

    @property
    def mediasense_enabled(self) -> bool:
        return bool(self.mediasense_base_url)

    @property
    def opensearch_enabled(self) -> bool:
        return bool(self.opensearch_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
