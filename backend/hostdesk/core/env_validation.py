"""
Startup environment validation for the API and the worker.

Both processes call ``validate_environment()`` before touching the database.
Any problem is reported on stderr and the process exits with status 1.
"""

import sys
from typing import Optional

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProductionSettings(BaseSettings):
    """
    The subset of configuration that must be right before anything starts.

    Unlike ``Settings``, ``database_url`` has no default here: a deployment
    that forgets it fails loudly instead of connecting to localhost.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # REQUIRED: postgresql+asyncpg:// (sqlite+aiosqlite:// only with DEBUG)
    database_url: str

    app_name: str = "HostDesk"
    debug: bool = False
    allowed_origins: str = "http://localhost:3000"

    # Email delivery
    resend_api_key: Optional[str] = None
    from_email: Optional[str] = None
    cron_secret: Optional[str] = None

    # Scheduling policy
    email_batch_size: int = 50
    email_max_retries: int = 3
    mail_timeout_seconds: float = 10.0


def _fatal(*lines: str) -> None:
    for line in lines:
        print(line, file=sys.stderr)
    sys.exit(1)


def configuration_problems(settings: ProductionSettings) -> list[str]:
    """Cross-field checks pydantic cannot express on single fields."""
    problems = []

    if not settings.debug:
        origins = [origin.strip() for origin in settings.allowed_origins.split(",")]
        if "*" in origins:
            problems.append("ALLOWED_ORIGINS: wildcard (*) is only allowed with DEBUG=true")

    url = settings.database_url
    if not url.startswith("postgresql") and not (settings.debug and url.startswith("sqlite")):
        problems.append("DATABASE_URL: must be a PostgreSQL connection string (postgresql+asyncpg://)")

    if settings.resend_api_key and not settings.from_email:
        problems.append("FROM_EMAIL: required when RESEND_API_KEY is set")

    if settings.email_batch_size < 1:
        problems.append("EMAIL_BATCH_SIZE: must be at least 1")
    if settings.email_max_retries < 0:
        problems.append("EMAIL_MAX_RETRIES: must not be negative")
    if settings.mail_timeout_seconds <= 0:
        problems.append("MAIL_TIMEOUT_SECONDS: must be positive")

    return problems


def validate_environment() -> ProductionSettings:
    """
    Validate the environment or exit.

    Returns:
        ProductionSettings: the validated settings

    Raises:
        SystemExit: exit code 1 on any missing or invalid variable
    """
    try:
        settings = ProductionSettings()
    except ValidationError as e:
        _fatal(
            "❌ FATAL: Environment validation failed",
            "\nMissing or invalid environment variables:",
            *(
                f"   • {' -> '.join(str(loc) for loc in error['loc'])}: {error['msg']}"
                for error in e.errors()
            ),
            "\nThe process cannot start with invalid configuration.",
        )

    problems = configuration_problems(settings)
    if problems:
        _fatal(
            "❌ FATAL: Invalid configuration",
            *(f"   • {problem}" for problem in problems),
        )

    print("✅ Environment validation passed")
    print(f"   App: {settings.app_name} (debug={settings.debug})")
    print(f"   Email delivery: {'resend' if settings.resend_api_key else 'disabled'}")
    return settings


if __name__ == "__main__":
    validate_environment()
