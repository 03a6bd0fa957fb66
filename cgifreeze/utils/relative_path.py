"""
Relative path calculation between two archive output paths.

The same target (site index, shared stylesheet) is referenced from thousands
of pages, so results are memoized per (from, to) pair.
"""

from __future__ import annotations

import posixpath
from typing import Dict, List, Tuple
from urllib.parse import quote


def _segments(path: str) -> List[str]:
    normalized = posixpath.normpath(path.replace('\\', '/'))
    return [part for part in normalized.split('/') if part and part != '.']


def compute_relative_path(from_path: str, to_path: str) -> str:
    """
    Compute the path that leads from the document at from_path to to_path.

    >>> compute_relative_path('a/b/c.html', 'd/e.html')
    '../../d/e.html'
    """
    from_parts = _segments(from_path)
    to_parts = _segments(to_path)

    if from_parts == to_parts:
        return '.'

    from_dir = from_parts[:-1]

    common = 0
    for a, b in zip(from_dir, to_parts):
        if a != b:
            break
        common += 1

    parts = ['..'] * (len(from_dir) - common) + to_parts[common:]
    return '/'.join(parts) if parts else '.'


def url_path(path: str) -> str:
    """
    Percent-encode a relative output path for an href, src or url() value.

    >>> url_path('img/a#b.png')
    'img/a%23b.png'
    """
    return quote(path, safe='/')


class RelativePathCalculator:
    """
    Memoizing wrapper around compute_relative_path.

    The function is pure, so one instance can be shared by every document in
    a run.
    """

    def __init__(self):
        self._cache: Dict[Tuple[str, str], str] = {}
        self.hits = 0
        self.misses = 0

    def relative(self, from_path: str, to_path: str) -> str:
        key = (from_path, to_path)
        cached = self._cache.get(key)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        result = compute_relative_path(from_path, to_path)
        self._cache[key] = result
        return result

    def stats(self) -> Dict[str, int]:
        return {'size': len(self._cache), 'hits': self.hits, 'misses': self.misses}
