"""
File Management Utilities

This module persists archived pages and assets under the archive root.
Every write goes through path normalization that rejects traversal, as a
second line of defense behind the path resolver.
"""

import os
import re
from pathlib import Path
from typing import Optional, Dict, Any, Union
import logging

from cgifreeze.core.exceptions import StorageError


class FileManager:
    """
    Manages the archive tree on disk.

    All paths are forward-slash relative paths inside the archive root; any
    path containing a '..' segment is refused.
    """

    def __init__(self, base_output_dir: Union[str, Path] = "archive"):
        """
        Initialize the file manager.

        Args:
            base_output_dir: Root directory of the archive tree
        """
        self.base_output_dir = Path(base_output_dir)
        self.logger = logging.getLogger(__name__)
        self._created_dirs = set()

        self.base_output_dir.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Archive directory: {self.base_output_dir.absolute()}")

    def normalize_path(self, relative_path: str) -> str:
        """
        Normalize an output path: strip leading slashes, collapse repeated
        slashes.

        Raises:
            StorageError: if the path is empty or contains '..'
        """
        if not isinstance(relative_path, str):
            raise StorageError(f"Invalid path: {relative_path!r}")
        normalized = re.sub(r'/+', '/', relative_path.replace('\\', '/')).lstrip('/')
        if not normalized:
            raise StorageError("Empty path")
        if '..' in normalized.split('/'):
            raise StorageError(f"Invalid path (traversal): {relative_path}")
        return normalized

    def absolute_path(self, relative_path: str) -> Path:
        return self.base_output_dir / self.normalize_path(relative_path)

    def exists(self, relative_path: str) -> bool:
        try:
            return self.absolute_path(relative_path).is_file()
        except StorageError:
            return False

    def save(self, relative_path: str, content: str, encoding: str = 'utf-8') -> str:
        """
        Save text content.

        Returns:
            Absolute path of the written file

        Raises:
            StorageError: if the path is rejected or the write fails
        """
        return self._write(relative_path, content.encode(encoding, errors='replace'))

    def save_binary(self, relative_path: str, content: bytes) -> str:
        """Save raw bytes unmodified."""
        return self._write(relative_path, content)

    def _write(self, relative_path: str, data: bytes) -> str:
        full_path = self.absolute_path(relative_path)
        try:
            self._ensure_directory(full_path.parent)
            with open(full_path, 'wb') as f:
                f.write(data)
        except PermissionError as e:
            raise StorageError(f"Permission denied: {relative_path}") from e
        except OSError as e:
            raise StorageError(f"Failed to save {relative_path}: {e}") from e

        self.logger.debug(f"Saved ({len(data)} bytes): {relative_path}")
        return str(full_path)

    def read(self, relative_path: str, encoding: str = 'utf-8') -> Optional[str]:
        """
        Read a text file from the archive.

        Returns:
            File content, or None if the file does not exist
        """
        full_path = self.absolute_path(relative_path)
        if not full_path.is_file():
            return None
        with open(full_path, 'r', encoding=encoding, errors='replace') as f:
            return f.read()

    def _ensure_directory(self, directory: Path) -> None:
        if directory in self._created_dirs:
            return
        directory.mkdir(parents=True, exist_ok=True)
        self._created_dirs.add(directory)

    def get_output_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the archive directory.

        Returns:
            Dictionary with file counts and sizes
        """
        stats = {
            'html_files': 0,
            'asset_files': 0,
            'total_size': 0,
            'archive_dir': str(self.base_output_dir),
        }

        if not self.base_output_dir.exists():
            return stats

        for root, _, files in os.walk(self.base_output_dir):
            for name in files:
                path = Path(root) / name
                stats['total_size'] += path.stat().st_size
                if name.endswith('.html'):
                    stats['html_files'] += 1
                else:
                    stats['asset_files'] += 1
        return stats
