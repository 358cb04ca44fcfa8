from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "CardAtlas"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/cardatlas"

    # Search result cache
    search_cache_ttl_seconds: float = 300.0
    search_cache_max_entries: int = 1000
    # Estimated byte ceiling across all entries; None disables the size check
    search_cache_max_bytes: int | None = 50 * 1024 * 1024
    search_cache_cleanup_interval_seconds: float = 30.0

    # Search execution
    search_query_timeout_seconds: float = 10.0
    search_default_limit: int = 20
    search_max_limit: int = 100

    # Search analytics
    # When False, searches are served normally but no events are recorded
    analytics_enabled: bool = True
    analytics_queue_size: int = 1000
    analytics_drain_timeout_seconds: float = 5.0


settings = Settings()


# =============================================================================
# ANALYTICS READ LIMITS
# =============================================================================

# Maximum events loaded for a single analytics summary
MAX_ANALYTICS_EVENTS = 10_000

# Default number of popular searches returned
DEFAULT_POPULAR_SEARCH_LIMIT = 10
