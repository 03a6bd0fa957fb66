"""
Registry of output paths guaranteed to exist in the finished archive.

Every planned page is registered before the first document is rewritten, so
links to pages that have not been fetched yet still resolve. Entries are
only ever added.
"""

from __future__ import annotations

import threading
from typing import Iterable, Iterator, List


class PathRegistry:
    def __init__(self, paths: Iterable[str] = ()):
        self._paths = set()
        self._order: List[str] = []
        self._lock = threading.Lock()
        for path in paths:
            self.add(path)

    def add(self, path: str) -> bool:
        """Register a path. Returns False if it was already present."""
        with self._lock:
            if path in self._paths:
                return False
            self._paths.add(path)
            self._order.append(path)
            return True

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._order))
