"""Configuration module for the Noted engine."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from noted import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the default store
_USER_ENV = Path.home() / ".noted" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class NotedConfig(BaseModel):
    """Configuration for the Noted engine."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTED_BASE_DIR", str(Path.home())))
    )
    # Store location (per-user application data directory by default)
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTED_DATABASE_PATH", ".noted/notes.db")
        )
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTED_LOG_DIR"))
            if os.getenv("NOTED_LOG_DIR")
            else None
        )
    )
    version: str = Field(default=__version__)

    # Search configuration
    search_limit: int = Field(
        default_factory=lambda: int(os.getenv("NOTED_SEARCH_LIMIT", "20"))
    )
    # Quiet window before an interactive query is dispatched
    search_debounce_ms: int = Field(
        default_factory=lambda: int(os.getenv("NOTED_SEARCH_DEBOUNCE_MS", "300"))
    )
    # Match the last query term as a prefix (type-ahead search)
    search_prefix_last_term: bool = Field(
        default_factory=lambda: _env_flag("NOTED_SEARCH_PREFIX_LAST_TERM", "true")
    )
    snippet_length: int = Field(
        default_factory=lambda: int(os.getenv("NOTED_SNIPPET_LENGTH", "120"))
    )
    highlight_start: str = Field(
        default_factory=lambda: os.getenv("NOTED_HIGHLIGHT_START", "<mark>")
    )
    highlight_end: str = Field(
        default_factory=lambda: os.getenv("NOTED_HIGHLIGHT_END", "</mark>")
    )
    # BM25 column weights
    title_weight: float = Field(
        default_factory=lambda: float(os.getenv("NOTED_TITLE_WEIGHT", "2.0"))
    )
    content_weight: float = Field(
        default_factory=lambda: float(os.getenv("NOTED_CONTENT_WEIGHT", "1.0"))
    )
    tags_weight: float = Field(
        default_factory=lambda: float(os.getenv("NOTED_TAGS_WEIGHT", "1.0"))
    )

    # Background workers used by the client services
    worker_threads: int = Field(
        default_factory=lambda: int(os.getenv("NOTED_WORKER_THREADS", "2"))
    )

    @model_validator(mode="after")
    def _validate_search_config(self) -> "NotedConfig":
        """Validate search settings."""
        if self.search_limit < 1:
            raise ValueError("search_limit must be >= 1")
        if self.search_debounce_ms < 0:
            raise ValueError("search_debounce_ms must be >= 0")
        if self.snippet_length < 16:
            raise ValueError("snippet_length must be >= 16")
        if not self.highlight_start or not self.highlight_end:
            raise ValueError("highlight markers cannot be empty")
        if self.worker_threads < 1:
            raise ValueError("worker_threads must be >= 1")

        if self.title_weight <= self.content_weight:
            logger.warning(
                "title_weight (%.2f) is not above content_weight (%.2f); "
                "title matches will no longer rank first.",
                self.title_weight,
                self.content_weight,
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        path = path.expanduser()
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_database_path(self) -> Path:
        """Get the absolute path of the default store."""
        return self.get_absolute_path(self.database_path)

    def get_log_dir(self) -> Path:
        """Get the log directory, defaulting to a logs/ folder next to the store."""
        if self.log_dir is not None:
            return self.get_absolute_path(self.log_dir)
        return self.get_database_path().parent / "logs"


# Create a global config instance
config = NotedConfig()
