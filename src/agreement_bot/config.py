"""
Application configuration.

Uses pydantic-settings to load values from environment variables / .env file.
All secrets (DB password, bot token, admin key) come from .env — never hardcoded.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore unknown env vars
    )

    # ── Database ──────────────────────────────────────────────
    postgres_db: str = "postgres"
    postgres_user: str = "postgres"
    postgres_password: str = "password"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    @property
    def database_url(self) -> str:
        """Async SQLAlchemy connection string for asyncpg."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # ── Telegram ──────────────────────────────────────────────
    telegram_bot_token: str = ""

    # ── Conversation engine ──────────────────────────────────
    default_language: str = "tr"               # used when a user has no stored language
    default_timezone: str = "Europe/Istanbul"
    state_ttl_minutes: int = 30                # inactivity timeout for a conversation
    max_reminders_per_agreement: int = 20      # cap for the custom flow reminder list
    state_reaper_interval_minutes: int = 15    # how often expired rows are deleted

    # ── Reminder delivery ────────────────────────────────────
    reminder_check_interval_minutes: int = 5   # how often due reminders are sent
    reminder_send_start_hour: int = 8          # local hour window in which reminders go out
    reminder_send_end_hour: int = 22
    reminder_batch_size: int = 100

    # ── App ───────────────────────────────────────────────────
    log_level: str = "INFO"
    debug: bool = False

    # ── Admin ─────────────────────────────────────────────────
    # Comma-separated Telegram user IDs that receive operator alerts.
    # Example: ADMIN_TELEGRAM_IDS=610379797,123456789
    admin_telegram_ids: str = ""
    # Shared key for the operator HTTP API (X-Admin-Key header).
    admin_api_key: str = ""

    @property
    def admin_ids(self) -> set[int]:
        """Parsed set of admin Telegram user IDs."""
        if not self.admin_telegram_ids:
            return set()
        return {int(x.strip()) for x in self.admin_telegram_ids.split(",") if x.strip()}


# Singleton — import this wherever config is needed
settings = Settings()
