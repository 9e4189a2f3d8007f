"""Base class for key-value storage backends."""
from abc import ABC, abstractmethod
from typing import List, Optional


class KeyValueBackend(ABC):
    """Durable string storage addressed by key.

    The store persists two keys (``notes`` and ``tags``), each holding a
    JSON document. Backends only move strings; encoding and decoding is
    the job of :class:`tagnotes.storage.state_repository.StateRepository`.
    """

    @abstractmethod
    def load(self, key: str) -> Optional[str]:
        """Return the value stored under ``key``, or None if absent."""
        pass

    @abstractmethod
    def save(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it existed."""
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        """List stored keys."""
        pass

    def close(self) -> None:
        """Release any resources held by the backend."""
