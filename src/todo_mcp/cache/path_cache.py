"""
Thread-safe LRU cache of todo id -> file path.

The cache only saves directory walks. Callers must verify a hit still exists
on disk; correctness never depends on what is stored here.
"""

import threading
from collections import OrderedDict
from pathlib import Path
from typing import Optional

DEFAULT_MAX_ENTRIES = 1000


class PathCache:
    """Bounded LRU keyed by todo id. All operations acquire _lock."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._max_entries = max_entries
        self._entries: "OrderedDict[str, Path]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, todo_id: str) -> Optional[Path]:
        with self._lock:
            path = self._entries.get(todo_id)
            if path is not None:
                self._entries.move_to_end(todo_id)
            return path

    def set(self, todo_id: str, path: Path) -> None:
        with self._lock:
            self._entries[todo_id] = Path(path)
            self._entries.move_to_end(todo_id)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def delete(self, todo_id: str) -> None:
        with self._lock:
            self._entries.pop(todo_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, todo_id: str) -> bool:
        with self._lock:
            return todo_id in self._entries
