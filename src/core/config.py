"""Configuration management for tradecycle."""

from croniter import croniter
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

    # Document store
    sqlite_db_path: str = Field(default="data/tradecycle.db", description="SQLite document store file")
    store_retry_attempts: int = Field(default=3, description="Attempts for a single flaky store call")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Redis Configuration (optional)
    redis_url: str | None = Field(default=None, description="Redis connection URL for job health tracking")

    # Trigger surface
    trigger_secret: str | None = Field(default=None, description="Shared secret for POST /triggers/{name}")
    enable_scheduler: bool = Field(default=True, description="Run the in-process cron scheduler")
    hourly_trigger_cron: str = Field(default="0 * * * *", description="Challenge activation/completion")
    daily_trigger_cron: str = Field(default="0 6 * * *", description="Trade reminder and auto-completion scan")
    weekly_trigger_cron: str = Field(default="0 0 * * mon", description="Challenge template generation")

    # Client opportunistic runner
    client_state_path: str = Field(
        default="~/.tradecycle/last_run", description="Client-local file holding the last opportunistic run"
    )
    client_run_interval_hours: int = Field(default=6, description="Minimum hours between opportunistic runs")

    # Challenge generation
    template_generation_limit: int = Field(default=10, ge=1, description="Templates read per generation run")

    @field_validator("hourly_trigger_cron", "daily_trigger_cron", "weekly_trigger_cron")
    @classmethod
    def _validate_cron(cls, value: str) -> str:
        if not croniter.is_valid(value):
            msg = f"Invalid cron expression: {value}"
            raise ValueError(msg)
        return value

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # Trade escalation thresholds (days since completion was requested)
    FIRST_REMINDER_DAYS: int = 3
    SECOND_REMINDER_DAYS: int = 7
    FINAL_REMINDER_DAYS: int = 10
    AUTO_COMPLETE_DAYS: int = 14
    MAX_REMINDERS: int = 3
    AUTO_COMPLETION_REASON: str = "No response after 14 days"

    # Recurrence intervals
    DAILY_INTERVAL_DAYS: int = 1
    WEEKLY_INTERVAL_DAYS: int = 7

    # Retry wrapper
    RETRY_BASE_DELAY_SECONDS: float = 1.0

    # Pagination Defaults
    SCAN_PER_PAGE_LIMIT: int = 500  # Upper bound for one engine scan query

    # Redis Configuration
    REDIS_MAX_CONNECTIONS: int = 10

    # Job Tracker Configuration
    TRACKER_DEAD_LETTER_QUEUE_MAXLEN: int = 100
    TRACKER_CONSECUTIVE_FAILURE_THRESHOLD: int = 3
    TRACKER_KEY_TTL_SECONDS: int = 86400 * 7


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
