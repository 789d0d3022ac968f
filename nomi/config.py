"""Configuration management"""
import logging
import os
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from nomi.exceptions import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)


def get_database_url() -> Optional[str]:
    """
    Resolve the database connection string.

    The client-facing variable takes precedence over the server-scoped one.
    Returns None when neither is set so the stores can run in
    "database unavailable" mode instead of crashing.
    """
    for key in ("EXPO_PUBLIC_DATABASE_URL", "DATABASE_URL"):
        value = os.getenv(key, "").strip()
        if value:
            return value
    return None


# Database
DATABASE_URL: Optional[str] = get_database_url()
DB_POOL_MIN_SIZE: int = int(os.getenv("DB_POOL_MIN_SIZE", "1"))
DB_POOL_MAX_SIZE: int = int(os.getenv("DB_POOL_MAX_SIZE", "5"))

# Time
DEFAULT_TIMEZONE: str = os.getenv("DEFAULT_TIMEZONE", "UTC")

# Reminders
REFILL_REMINDER_HOUR: int = int(os.getenv("REFILL_REMINDER_HOUR", "9"))
PAST_DUE_DELAY_MINUTES: int = int(os.getenv("PAST_DUE_DELAY_MINUTES", "30"))
PAST_DUE_CHECK_INTERVAL_HOURS: float = float(os.getenv("PAST_DUE_CHECK_INTERVAL_HOURS", "1"))
NOTIFICATION_RETENTION_DAYS: int = int(os.getenv("NOTIFICATION_RETENTION_DAYS", "7"))

# Mood
MOOD_HISTORY_LIMIT: int = int(os.getenv("MOOD_HISTORY_LIMIT", "30"))

# API
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8080"))
CORS_ORIGINS: list[str] = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:8081").split(",")
    if origin.strip()
]

# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


# Validation
def validate_config() -> None:
    """Validate configuration"""
    if not DATABASE_URL:
        # Unavailable mode: reads return defaults, writes raise
        logger.warning(
            "Database URL not found (EXPO_PUBLIC_DATABASE_URL / DATABASE_URL). "
            "Running in fallback mode."
        )
    try:
        ZoneInfo(DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigurationError(
            f"DEFAULT_TIMEZONE is not a valid IANA timezone: {DEFAULT_TIMEZONE}",
            config_key="DEFAULT_TIMEZONE",
        )
    if not 0 <= REFILL_REMINDER_HOUR <= 23:
        raise ConfigurationError("REFILL_REMINDER_HOUR must be between 0 and 23", config_key="REFILL_REMINDER_HOUR")
    if PAST_DUE_DELAY_MINUTES <= 0:
        raise ConfigurationError("PAST_DUE_DELAY_MINUTES must be positive", config_key="PAST_DUE_DELAY_MINUTES")
