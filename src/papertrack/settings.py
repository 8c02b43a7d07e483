"""Configuration helpers for papertrack."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_LIBRARY_ROOT = Path.home() / "papertrack-library"
DEFAULT_STORAGE_KEY = "research-tracker-data-v1"


class Settings(BaseModel):
    """Runtime configuration loaded from env vars with sensible defaults."""

    data_dir: Path = Field(default_factory=lambda: DEFAULT_LIBRARY_ROOT)
    db_filename: str = "library.sqlite3"
    log_level: str = "INFO"
    storage_key: str = DEFAULT_STORAGE_KEY
    storage_quota_bytes: int | None = None
    save_cooldown_ms: int = 1000
    list_refresh_ms: int = 500
    input_debounce_ms: int = 300
    max_consecutive_failures: int = 3
    csv_max_rows: int = 1000
    csv_max_line_length: int = 10_000
    import_max_bytes: int = 10 * 1024 * 1024

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename

    @property
    def attachments_dir(self) -> Path:
        return self.data_dir / "pdfs"

    def ensure_directories(self) -> None:
        """Create data directories if they are missing."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def load(cls) -> "Settings":
        load_dotenv()
        data_dir = Path(os.environ.get("PAPERTRACK_DATA_DIR", DEFAULT_LIBRARY_ROOT))
        quota = os.environ.get("PAPERTRACK_STORAGE_QUOTA")
        return cls(
            data_dir=data_dir,
            db_filename=os.environ.get("PAPERTRACK_DB_FILENAME", "library.sqlite3"),
            log_level=os.environ.get("PAPERTRACK_LOG_LEVEL", "INFO"),
            storage_key=os.environ.get("PAPERTRACK_STORAGE_KEY", DEFAULT_STORAGE_KEY),
            storage_quota_bytes=int(quota) if quota else None,
            save_cooldown_ms=int(os.environ.get("PAPERTRACK_SAVE_COOLDOWN_MS", 1000)),
            list_refresh_ms=int(os.environ.get("PAPERTRACK_LIST_REFRESH_MS", 500)),
            input_debounce_ms=int(os.environ.get("PAPERTRACK_INPUT_DEBOUNCE_MS", 300)),
            max_consecutive_failures=int(os.environ.get("PAPERTRACK_MAX_FAILURES", 3)),
            csv_max_rows=int(os.environ.get("PAPERTRACK_CSV_MAX_ROWS", 1000)),
        )


def get_settings() -> Settings:
    """Convenience accessor for lazy modules."""
    settings = Settings.load()
    settings.ensure_directories()
    return settings


def _stderr_logger(*args) -> structlog.PrintLogger:
    # Resolved per call so a swapped sys.stderr (CliRunner, pytest) is honoured.
    return structlog.PrintLogger(sys.stderr)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output to stderr through a level filter."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
