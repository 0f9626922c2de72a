"""Application settings and configuration.

This module defines all configuration options for the moderation ledger.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    Per-community escalation policy is not configured here; it lives in the
    ``escalation_config`` table and is edited through the ledger API.
    """

    # Application metadata
    app_name: str = Field(default="Modledger", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database configuration
    database_url: str = Field(default="sqlite:///./modledger.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    db_pool_timeout_seconds: float = Field(default=5.0, alias="DB_POOL_TIMEOUT_SECONDS")

    # Redis configuration for the read-through cache
    cache_enabled: bool = Field(default=True, alias="CACHE_ENABLED")
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    cache_key_prefix: str = Field(default="modledger", alias="CACHE_KEY_PREFIX")
    cache_socket_timeout_seconds: float = Field(
        default=0.5,
        alias="CACHE_SOCKET_TIMEOUT_SECONDS",
    )
    cache_config_ttl_seconds: int = Field(default=15 * 60, alias="CACHE_CONFIG_TTL_SECONDS")

    # Degraded mode: consecutive cache failures before bypassing the cache
    cache_failure_threshold: int = Field(default=3, alias="CACHE_FAILURE_THRESHOLD")
    cache_cooldown_seconds: float = Field(default=30.0, alias="CACHE_COOLDOWN_SECONDS")

    # Escalation behaviour
    escalation_system_actor_id: int = Field(default=0, alias="ESCALATION_SYSTEM_ACTOR_ID")
    escalation_exclude_reversed_warnings: bool = Field(
        default=False,
        alias="ESCALATION_EXCLUDE_REVERSED_WARNINGS",
    )
    escalation_tiered_timeouts: bool = Field(default=False, alias="ESCALATION_TIERED_TIMEOUTS")

    # Case listing
    cases_page_limit_max: int = Field(default=200, alias="CASES_PAGE_LIMIT_MAX")

    # CORS configuration for collaborator dashboards
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()
