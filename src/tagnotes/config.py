"""Configuration module for tagnotes."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from tagnotes import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the default log directory
_USER_ENV = Path.home() / ".tagnotes" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ("json", "sqlite", "memory")
SORT_ORDERS = ("ascending", "descending")


class TagNotesConfig(BaseModel):
    """Configuration for tagnotes."""

    # Base directory for the project
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("TAGNOTES_BASE_DIR", "."))
    )
    # Directory holding one JSON file per persisted key (json backend)
    data_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("TAGNOTES_DATA_DIR", "data"))
    )
    # Which key-value backend persists the notes/tags snapshots
    storage_backend: str = Field(
        default_factory=lambda: os.getenv("TAGNOTES_STORAGE_BACKEND", "json").lower()
    )
    # SQLite file (sqlite backend)
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("TAGNOTES_DATABASE_PATH", "data/tagnotes.db")
        )
    )
    # Sort direction a fresh session starts with
    default_sort: str = Field(
        default_factory=lambda: os.getenv("TAGNOTES_DEFAULT_SORT", "descending").lower()
    )
    # Logging configuration
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("TAGNOTES_LOG_DIR"))
            if os.getenv("TAGNOTES_LOG_DIR")
            else None
        )
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("TAGNOTES_SERVER_NAME", "tagnotes"))
    server_version: str = Field(default=__version__)

    model_config = {"validate_assignment": True}

    @model_validator(mode="after")
    def _validate_choices(self) -> "TagNotesConfig":
        """Reject unknown storage backends and sort orders."""
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"storage_backend must be one of {', '.join(STORAGE_BACKENDS)}, "
                f"got {self.storage_backend!r}"
            )
        if self.default_sort not in SORT_ORDERS:
            raise ValueError(
                f"default_sort must be one of {', '.join(SORT_ORDERS)}, "
                f"got {self.default_sort!r}"
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_data_dir(self) -> Path:
        """Get the absolute data directory, creating it if needed."""
        data_dir = self.get_absolute_path(self.data_dir)
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = TagNotesConfig()
