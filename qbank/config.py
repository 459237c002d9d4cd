"""
Configuration management using pydantic-settings.
Reconciliation settings for the question bank (subject backfill and correction).
"""

from pathlib import Path
from typing import Optional
from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = Field(
        default="sqlite:///data/questions.db",
        description="SQLAlchemy database URL"
    )

    # Backfill
    batch_size: int = Field(
        default=50,
        ge=1,
        description="Questions written concurrently per backfill batch"
    )
    write_retries: int = Field(
        default=0,
        ge=0,
        description="Retries for a failed row/bulk write (0 = surface immediately)"
    )
    retry_wait_min: float = Field(
        default=0.5,
        ge=0,
        description="Minimum seconds between write retries"
    )
    retry_wait_max: float = Field(
        default=8.0,
        ge=0,
        description="Maximum seconds between write retries"
    )

    # Correction
    min_reassign_margin: int = Field(
        default=1,
        ge=1,
        description="Score lead the top subject needs over the current one"
    )
    subject_profiles_path: Optional[Path] = Field(
        default=None,
        description="JSON file overriding the built-in subject keyword profiles"
    )

    # Reporting
    preview_chars: int = Field(
        default=100,
        description="Characters of question text shown for manual review"
    )
    report_dir: str = Field(
        default="./data/reports",
        description="Where --report-file paths are resolved when relative"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="QBANK_",
        case_sensitive=False,
        extra="ignore"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._setup_directories()

    def _setup_directories(self):
        """Create the SQLite database directory if needed."""
        db_path = sqlite_path(self.database_url)
        if db_path is not None:
            db_path.parent.mkdir(parents=True, exist_ok=True)


def sqlite_path(database_url: str) -> Optional[Path]:
    """Return the file path of a SQLite URL, or None for other backends and memory."""
    if not database_url.startswith("sqlite:///"):
        return None
    path = database_url.replace("sqlite:///", "", 1)
    if not path or path == ":memory:":
        return None
    return Path(path)


@lru_cache()
def get_config() -> Settings:
    """Get cached settings instance."""
    return Settings()


def ensure_directories(settings: Optional[Settings] = None):
    """Create data and report directories."""
    settings = settings or get_config()
    settings._setup_directories()
    Path(settings.report_dir).mkdir(parents=True, exist_ok=True)
