"""
Exception hierarchy shared by the archiver components.

Acquisition and rewriting failures are raised per item and caught by the
controller, which records them and moves on to the next page. Configuration
errors are raised before any fetching starts.
"""

from typing import Optional


class ArchiverError(Exception):
    """Base class for all cgifreeze errors."""


class ConfigError(ArchiverError):
    """Configuration file is missing, unparseable or invalid."""


class MappingRuleError(ConfigError):
    """A path mapping rule is malformed and cannot be applied safely."""


class EncodingError(ArchiverError):
    """Unsupported source character encoding."""


class StorageError(ArchiverError):
    """Output file could not be written or the path was rejected."""


class FetchError(ArchiverError):
    """A URL could not be acquired (transport failure or non-2xx status)."""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class ParserError(ArchiverError):
    """HTML could not be parsed into a reference set."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class RewriteError(ArchiverError):
    """A document could not be rewritten; the page must not be persisted."""

    def __init__(self, message: str, url: Optional[str] = None, output_path: Optional[str] = None):
        super().__init__(message)
        self.url = url
        self.output_path = output_path

    def __str__(self) -> str:
        base = super().__str__()
        if self.output_path:
            return f"{base} [{self.url} -> {self.output_path}]"
        return base


class UnmappablePageError(ArchiverError):
    """No mapping rule gives a planned page an output path."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url
