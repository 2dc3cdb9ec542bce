"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "HostDesk"
    debug: bool = False
    api_v1_prefix: str = "/v1"
    allowed_origins: str = "http://localhost:3000"

    # Database
    database_url: str = "postgresql+asyncpg://localhost/hostdesk"
    database_echo: bool = False

    # Cleaning derivation
    cleaning_offset_hours: float = 3.0
    cleaning_collision_window_hours: float = 2.0
    cleaning_cancel_window_hours: float = 24.0
    default_cleaning_cost: float = 80.0

    # Scheduled emails
    email_batch_size: int = 50
    email_max_retries: int = 3
    email_retry_delay_hours: float = 24.0
    email_claim_timeout_minutes: int = 15
    mail_timeout_seconds: float = 10.0

    # Resend
    resend_api_key: Optional[str] = None
    resend_base_url: str = "https://api.resend.com"
    from_email: Optional[str] = None

    # Cron trigger / worker
    cron_secret: Optional[str] = None
    email_process_interval_minutes: int = 5
    reconcile_interval_hours: int = 24
    reconcile_lookback_days: int = 7


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
