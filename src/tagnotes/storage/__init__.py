"""Storage layer for tagnotes."""

from tagnotes.storage.base import KeyValueBackend
from tagnotes.storage.json_backend import JsonFileBackend
from tagnotes.storage.memory_backend import MemoryBackend
from tagnotes.storage.sqlite_backend import SqliteBackend
from tagnotes.storage.state_repository import StateRepository, create_backend

__all__ = [
    "KeyValueBackend",
    "JsonFileBackend",
    "MemoryBackend",
    "SqliteBackend",
    "StateRepository",
    "create_backend",
]
