from __future__ import annotations

from threading import Lock
from typing import Optional

from .store import KnowledgeIndex


class IndexCache:
    """Shared holder of the current in-memory index.

    Values are frozen `KnowledgeIndex` snapshots and every write replaces the
    whole value, so the lock is only held for a reference swap. No I/O ever
    happens while it is held.
    """

    def __init__(self, index: Optional[KnowledgeIndex] = None) -> None:
        self._index = index
        self._lock = Lock()

    def read(self) -> Optional[KnowledgeIndex]:
        with self._lock:
            return self._index

    def write(self, index: KnowledgeIndex) -> None:
        with self._lock:
            self._index = index

    def write_if_absent(self, index: KnowledgeIndex) -> KnowledgeIndex:
        """Publish `index` unless something is already cached; return the held value."""
        with self._lock:
            if self._index is None:
                self._index = index
            return self._index

    def clear(self) -> None:
        with self._lock:
            self._index = None
