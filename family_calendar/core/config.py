"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Family Calendar"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"  # Bind to all interfaces for external access
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database
    database_url: str = "sqlite:///./family_calendar.db"

    # Logging
    log_file: str = "~/.logs/family_calendar/latest.log"

    # Recurrence engine
    max_occurrences: int = 100  # Hard cap per series per window
    deletion_sentinel: str = "DELETED"  # Title reserved for deletion markers
    resolve_timeout_seconds: float = 0  # 0 disables the deadline

    # Derived event refresh job
    derived_refresh_interval_minutes: int = 0  # 0 disables the job
    derived_refresh_days_ahead: int = 14


settings = Settings()
