# booking_engine/config.py
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    ENV: str = "dev"
    APP_NAME: str = "Booking Engine"
    LOG_LEVEL: str = "INFO"

    # DB URL – SQLite local by default
    DATABASE_URL: str = "sqlite:///./booking_engine.db"

    # Calendar gateway used for busy-time lookups and event creation.
    # When unset, no external busy time is assumed.
    CALENDAR_API_URL: Optional[str] = None
    CALENDAR_API_TOKEN: Optional[str] = None
    CALENDAR_TIMEOUT_SECONDS: float = 5.0

    # Booking concurrency
    BOOKING_LOCK_TIMEOUT_SECONDS: float = 10.0
    ROTATION_MAX_RETRIES: int = 3

    # Booking window / recurring defaults
    DEFAULT_PERIOD_DAYS: int = 30
    MAX_RECURRING_OCCURRENCES: int = 24

    # Post-commit side effects (all optional)
    WEBHOOK_URL: Optional[str] = None
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None  # our Twilio sender ID
    TWILIO_STATUS_CALLBACK_URL: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

_settings: Optional[Settings] = None

def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
