"""
URL Validation Utilities

This module provides URL validation and normalization functions used to
decide whether a reference belongs to the site being archived.
"""

import re
import posixpath
from urllib.parse import urlparse, urlunparse, urldefrag
from typing import Tuple, Optional
import logging


LOCALHOST_NAMES = ('localhost', '127.0.0.1', '::1')


class URLValidator:
    """
    Validates and normalizes URLs for the archival process.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

        # Patterns for common URL formats
        self.domain_pattern = re.compile(
            r'^[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?)*$'
        )

    def validate_base_url(self, url: str) -> Tuple[bool, str]:
        """
        Validate a configured site base URL.

        Args:
            url: The base URL of the CGI script (e.g. http://example.com/wolf.cgi)

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not url or not isinstance(url, str):
            return False, "URL cannot be empty"

        try:
            parsed = urlparse(url.strip())
        except ValueError as e:
            return False, f"URL validation error: {e}"

        if parsed.scheme not in ['http', 'https']:
            return False, "URL must use HTTP or HTTPS protocol"

        host = parsed.hostname
        if not host:
            return False, "URL must have a valid domain"

        if host not in LOCALHOST_NAMES and not self.domain_pattern.match(host):
            return False, "Invalid domain format"

        return True, ""

    def normalize_url(self, url: str) -> str:
        """
        Strip the fragment from a URL. Every reference is reduced to this
        form before any mapping decision.
        """
        return urldefrag(url.strip())[0]

    def extract_host(self, url: str) -> Optional[str]:
        """
        Extract the lowercased host name from a URL.

        Returns:
            Host string, or None if the URL has no host or cannot be parsed
        """
        try:
            return urlparse(url).hostname
        except ValueError:
            return None

    def is_internal_host(self, host: Optional[str], base_host: str) -> bool:
        """
        Check whether a host equals the site host or is one of its subdomains.
        """
        if not host or not base_host:
            return False
        host = host.lower()
        base_host = base_host.lower()
        return host == base_host or host.endswith('.' + base_host)

    def is_internal(self, url: str, base_host: str) -> bool:
        return self.is_internal_host(self.extract_host(url), base_host)

    def base_directory(self, url: str) -> str:
        """
        Directory part of a URL path, always with a trailing slash.

        'http://example.com/game/wolf.cgi' -> '/game/'
        """
        path = urlparse(url).path or '/'
        if path.endswith('/'):
            return path
        directory = posixpath.dirname(path)
        return directory if directory.endswith('/') else directory + '/'

    def is_localhost(self, url: str) -> bool:
        return self.extract_host(url) in LOCALHOST_NAMES

    def join_query(self, base_url: str, query: str) -> str:
        """
        Attach a query string such as '?cmd=top' to the base CGI URL.
        """
        parsed = urlparse(base_url)
        return urlunparse((parsed.scheme, parsed.netloc, parsed.path or '/', parsed.params,
                           query.lstrip('?'), ''))


# Global validator instance
_validator_instance: Optional[URLValidator] = None


def get_validator() -> URLValidator:
    """
    Get the global URL validator instance.

    Returns:
        URLValidator instance
    """
    global _validator_instance
    if _validator_instance is None:
        _validator_instance = URLValidator()
    return _validator_instance


def normalize_url(url: str) -> str:
    """Convenience wrapper: strip the fragment from a URL."""
    return get_validator().normalize_url(url)


def is_internal(url: str, base_host: str) -> bool:
    """Convenience wrapper: host equality-or-subdomain test."""
    return get_validator().is_internal(url, base_host)
