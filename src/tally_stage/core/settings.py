"""Application settings and configuration.

This module defines all configuration options for the Tally Stage service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Hard ceiling shared by ledger pages and aggregation batches.
MAX_BATCH_SIZE = 1000


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Tally Stage", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./tally.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Aggregation scheduler
    tally_interval_ms: int = Field(default=60_000, alias="TALLY_INTERVAL_MS")
    tally_batch_size: int = Field(default=100, alias="TALLY_BATCH_SIZE")
    tally_max_pages_per_run: int = Field(default=10, alias="TALLY_MAX_PAGES_PER_RUN")
    tally_enabled: bool = Field(default=True, alias="TALLY_ENABLED")
    tally_autostart: bool = Field(default=True, alias="TALLY_AUTOSTART")
    tally_batch_delay_ms: int = Field(default=0, alias="TALLY_BATCH_DELAY_MS")
    tally_entry_kinds: list[str] = Field(
        default=["thread", "submission"],
        alias="TALLY_ENTRY_KINDS",
    )

    # Backlog stats
    tally_stats_sample_size: int = Field(default=MAX_BATCH_SIZE, alias="TALLY_STATS_SAMPLE_SIZE")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @field_validator("tally_batch_size", "tally_stats_sample_size")
    @classmethod
    def _clamp_page_size(cls, value: int) -> int:
        return min(max(value, 1), MAX_BATCH_SIZE)

    @field_validator("tally_interval_ms", "tally_max_pages_per_run")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(value, 1)

    @field_validator("tally_batch_delay_ms")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        return max(value, 0)

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
