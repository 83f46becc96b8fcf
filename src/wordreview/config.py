"""Configuration settings for the review service."""
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Learning defaults
REVIEW_INTERVALS = (1, 2, 4, 7, 15, 30)  # days between reviews
CONTRIBUTION_DAYS = 180


def _parse_intervals(raw: Optional[str]) -> Tuple[int, ...]:
    """Parse a comma separated list of day counts."""
    if not raw:
        return REVIEW_INTERVALS
    return tuple(int(part) for part in raw.split(",") if part.strip())


def _parse_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///wordreview.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass(frozen=True)
class LearningSettings:
    """Learning process settings.

    Frozen so that one instance can be shared by every service that receives it.
    """
    daily_new_words: int = int(os.getenv("DAILY_NEW_WORDS", "10"))
    daily_review_limit: int = int(os.getenv("DAILY_REVIEW_LIMIT", "60"))
    review_intervals: Tuple[int, ...] = _parse_intervals(os.getenv("REVIEW_INTERVALS"))
    mastery_threshold: int = int(os.getenv("MASTERY_THRESHOLD", "6"))
    timezone: str = os.getenv("LEARNING_TIMEZONE", "UTC")
    contribution_days: int = int(os.getenv("CONTRIBUTION_DAYS", str(CONTRIBUTION_DAYS)))

    @property
    def review_slots(self) -> int:
        """Review slots left after new words are taken from the daily limit."""
        return max(self.daily_review_limit - self.daily_new_words, 0)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def to_dict(self) -> dict:
        return {
            "daily_new_words": self.daily_new_words,
            "daily_review_limit": self.daily_review_limit,
            "review_intervals": list(self.review_intervals),
            "mastery_threshold": self.mastery_threshold,
            "timezone": self.timezone,
        }


@dataclass
class AuthSettings:
    """Authentication related settings used by the core."""
    # Requests without a user id share one anonymous scope when enabled
    legacy_mode: bool = _parse_bool(os.getenv("LEGACY_MODE"), True)


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_learning_settings() -> LearningSettings:
    """Get learning settings."""
    return LearningSettings()


def get_auth_settings() -> AuthSettings:
    """Get auth settings."""
    return AuthSettings()


def validate_learning_settings(learning: LearningSettings) -> None:
    """Raise ValueError if the learning settings cannot drive a schedule."""
    if learning.daily_new_words < 0:
        raise ValueError("DAILY_NEW_WORDS cannot be negative")

    if learning.daily_review_limit < 1:
        raise ValueError("DAILY_REVIEW_LIMIT must be positive")

    if not learning.review_intervals:
        raise ValueError("REVIEW_INTERVALS cannot be empty")

    if any(days < 1 for days in learning.review_intervals):
        raise ValueError("REVIEW_INTERVALS must contain positive day counts")

    if learning.mastery_threshold < 1:
        raise ValueError("MASTERY_THRESHOLD must be positive")

    if learning.contribution_days < 1:
        raise ValueError("CONTRIBUTION_DAYS must be positive")

    try:
        ZoneInfo(learning.timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown LEARNING_TIMEZONE: {learning.timezone}") from e


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    learning: LearningSettings = field(default_factory=get_learning_settings)
    auth: AuthSettings = field(default_factory=get_auth_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        validate_learning_settings(self.learning)

        if self.logging.interval < 1:
            raise ValueError("LOG_INTERVAL must be positive")


# Create global settings instance
settings = Settings()
settings.validate()
