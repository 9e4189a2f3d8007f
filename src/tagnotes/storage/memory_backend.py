"""In-process key-value backend."""
from typing import Dict, List, Optional, Tuple

from tagnotes.storage.base import KeyValueBackend


class MemoryBackend(KeyValueBackend):
    """Keeps values in a dict and records every write.

    Nothing survives the process. ``writes`` lists each ``(key, value)``
    pair in the order it was saved, which makes it easy to assert that an
    operation did, or did not, persist.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self.writes: List[Tuple[str, str]] = []

    def load(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def save(self, key: str, value: str) -> None:
        self._data[key] = value
        self.writes.append((key, value))

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> List[str]:
        return list(self._data)

    def write_count(self, key: Optional[str] = None) -> int:
        """Number of saves, optionally only those for ``key``."""
        if key is None:
            return len(self.writes)
        return sum(1 for k, _ in self.writes if k == key)
