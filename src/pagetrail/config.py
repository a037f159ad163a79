"""Configuration management for pagetrail.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

DEFAULT_TIMEZONE = "America/New_York"


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # Calendar
    timezone: str
    avg_window_days: int

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "PAGETRAIL_DB_PATH",
            str(Path.home() / ".pagetrail" / "pagetrail.db"),
        )
        db_path = Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            timezone=os.environ.get("PAGETRAIL_TIMEZONE", DEFAULT_TIMEZONE),
            avg_window_days=int(os.environ.get("PAGETRAIL_AVG_WINDOW_DAYS", "30")),
            log_level=os.environ.get("PAGETRAIL_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"Unknown timezone: {self.timezone}")

        if self.avg_window_days <= 0:
            errors.append("PAGETRAIL_AVG_WINDOW_DAYS must be a positive number of days")

        # Check database directory is writable
        if not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None


def today_in(timezone: Optional[str] = None) -> date:
    """The current calendar day in ``timezone`` (default: configured timezone)."""
    return datetime.now(ZoneInfo(timezone or get_config().timezone)).date()
