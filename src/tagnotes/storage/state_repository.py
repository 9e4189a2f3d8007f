"""Repository translating notes/tags snapshots to and from a key-value backend."""
import json
import logging
from typing import List, Sequence, Tuple

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from tagnotes.config import TagNotesConfig
from tagnotes.exceptions import ConfigurationError, ErrorCode, StorageError
from tagnotes.models.schema import Note, dedupe_tags, validate_tag_name
from tagnotes.storage.base import KeyValueBackend
from tagnotes.storage.json_backend import JsonFileBackend
from tagnotes.storage.memory_backend import MemoryBackend
from tagnotes.storage.sqlite_backend import SqliteBackend

logger = logging.getLogger(__name__)

NOTES_KEY = "notes"
TAGS_KEY = "tags"

_notes_adapter = TypeAdapter(List[Note])
_tags_adapter = TypeAdapter(List[str])


class StateRepository:
    """Loads and saves the two persisted values of the note store.

    ``notes`` holds a JSON array of note objects and ``tags`` a JSON array
    of tag names. A missing key reads as an empty collection.
    """

    def __init__(self, backend: KeyValueBackend):
        self.backend = backend

    def _decode(self, key: str, adapter: TypeAdapter):
        raw = self.backend.load(key)
        if raw is None:
            logger.debug(f"No stored value for '{key}', starting empty")
            return []
        try:
            return adapter.validate_json(raw)
        except PydanticValidationError as e:
            raise StorageError(
                f"Stored value for '{key}' could not be decoded",
                operation="load",
                key=key,
                code=ErrorCode.STORAGE_DECODE_FAILED,
                original_error=e,
            ) from e

    def load_notes(self) -> List[Note]:
        """Load the persisted notes, in their stored order."""
        notes = self._decode(NOTES_KEY, _notes_adapter)
        seen = set()
        for note in notes:
            if note.id in seen:
                raise StorageError(
                    f"Stored notes contain duplicate ID '{note.id}'",
                    operation="load",
                    key=NOTES_KEY,
                    code=ErrorCode.STORAGE_DECODE_FAILED,
                )
            seen.add(note.id)
        return notes

    def load_tags(self) -> List[str]:
        """Load the persisted tag set, with duplicates dropped."""
        tags = self._decode(TAGS_KEY, _tags_adapter)
        try:
            for tag in tags:
                validate_tag_name(tag)
        except ValueError as e:
            raise StorageError(
                "Stored tags contain an invalid name",
                operation="load",
                key=TAGS_KEY,
                code=ErrorCode.STORAGE_DECODE_FAILED,
                original_error=e,
            ) from e
        return list(dedupe_tags(tags))

    def load_state(self) -> Tuple[List[Note], List[str]]:
        """Load ``(notes, tags)``."""
        return self.load_notes(), self.load_tags()

    def save_notes(self, notes: Sequence[Note]) -> None:
        payload = [note.model_dump(mode="json") for note in notes]
        self.backend.save(NOTES_KEY, json.dumps(payload, ensure_ascii=False))

    def save_tags(self, tags: Sequence[str]) -> None:
        self.backend.save(TAGS_KEY, json.dumps(list(tags), ensure_ascii=False))


def create_backend(cfg: TagNotesConfig) -> KeyValueBackend:
    """Build the backend selected by ``cfg.storage_backend``."""
    if cfg.storage_backend == "json":
        return JsonFileBackend(cfg.get_data_dir())
    if cfg.storage_backend == "sqlite":
        return SqliteBackend(db_url=cfg.get_db_url())
    if cfg.storage_backend == "memory":
        return MemoryBackend()
    raise ConfigurationError(
        f"Unknown storage backend: {cfg.storage_backend}",
        config_key="storage_backend",
    )
