"""Key-value backend that keeps one JSON file per key."""
import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Union

from tagnotes.exceptions import ErrorCode, StorageError
from tagnotes.storage.base import KeyValueBackend

logger = logging.getLogger(__name__)

# Keys become file names, so keep them to a safe character set
SAFE_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]+$")


def validate_key(key: str) -> str:
    """Reject keys that would escape the data directory.

    Raises:
        StorageError: If the key is empty or contains unsafe characters
    """
    if not key or not SAFE_KEY_PATTERN.match(key):
        raise StorageError(
            "Storage key contains invalid characters. "
            "Only alphanumeric characters, underscores, and hyphens are allowed.",
            operation="validate_key",
            key=key[:50] if key else None,
            code=ErrorCode.STORAGE_WRITE_FAILED,
        )
    return key


class JsonFileBackend(KeyValueBackend):
    """Stores each key as ``<data_dir>/<key>.json``.

    Writes go to a temporary sibling file which is then moved over the
    target, so a crash mid-write leaves the previous value intact.
    """

    SUFFIX = ".json"

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"JsonFileBackend initialized at {self.data_dir}")

    def _path_for(self, key: str) -> Path:
        return self.data_dir / f"{validate_key(key)}{self.SUFFIX}"

    def load(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(
                f"Failed to read '{key}'",
                operation="load",
                key=key,
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

    def save(self, key: str, value: str) -> None:
        path = self._path_for(key)
        temp_path = path.with_suffix(".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
        except OSError as e:
            raise StorageError(
                f"Failed to write '{key}'",
                operation="save",
                key=key,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.debug(f"Saved {key} ({len(value)} chars) to {path}")

    def delete(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(
                f"Failed to delete '{key}'",
                operation="delete",
                key=key,
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e
        return True

    def keys(self) -> List[str]:
        return sorted(p.stem for p in self.data_dir.glob(f"*{self.SUFFIX}"))
