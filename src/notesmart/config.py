"""Configuration module for notesmart."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notesmart import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives alongside the default database
_USER_ENV = Path.home() / ".notesmart" / ".env"
load_dotenv(_USER_ENV)

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class NotesmartConfig(BaseModel):
    """Configuration for the notesmart data core."""

    # Base directory that relative paths are resolved against
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTESMART_BASE_DIR", "."))
    )
    # SQLite database file, used unless database_url is set
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTESMART_DATABASE_PATH", "data/db/notesmart.db")
        )
    )
    # Full SQLAlchemy URL; takes precedence over database_path when set
    database_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("NOTESMART_DATABASE_URL") or None
    )
    # Seconds a SQLite connection waits on a locked database before failing
    sqlite_busy_timeout: float = Field(
        default_factory=lambda: float(os.getenv("NOTESMART_SQLITE_BUSY_TIMEOUT", "30"))
    )
    echo_sql: bool = Field(default_factory=lambda: _env_flag("NOTESMART_ECHO_SQL"))
    # Logging configuration
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTESMART_LOG_DIR"))
            if os.getenv("NOTESMART_LOG_DIR")
            else None
        )
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("NOTESMART_LOG_LEVEL", "INFO").upper()
    )
    # Default number of entries returned by popular-tag queries
    popular_tags_limit: int = Field(
        default_factory=lambda: int(os.getenv("NOTESMART_POPULAR_TAGS_LIMIT", "10"))
    )
    app_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_settings(self) -> "NotesmartConfig":
        """Reject settings that would make the store unusable."""
        if self.sqlite_busy_timeout < 0:
            raise ValueError("sqlite_busy_timeout must be >= 0")
        if self.popular_tags_limit < 1:
            raise ValueError("popular_tags_limit must be >= 1")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL, creating the SQLite directory if needed."""
        if self.database_url:
            return self.database_url
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = NotesmartConfig()
