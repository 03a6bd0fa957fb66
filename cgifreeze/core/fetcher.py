"""
HTTP Retrieval Module

This module handles downloading pages and assets from the site being
archived, with respectful pacing, retries and uniform failure reporting.
"""

from __future__ import annotations

import time
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urljoin

import requests

from cgifreeze import __version__
from cgifreeze.core.exceptions import FetchError
from cgifreeze.utils.validators import get_validator


PERMANENT_STATUS_CODES = (403, 404, 410)


@dataclass
class FetchResult:
    url: str
    status: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)


class Fetcher:
    """
    Downloads URLs with rate limiting and retry.

    Implements the respectful scraping practices needed for fragile CGI hosts:
    - Minimum delay between every request (via the shared rate limiter)
    - Exponential backoff on timeouts, connection errors, 429 and 5xx
    - No retry on permanent errors (403, 404, 410)
    """

    def __init__(self,
                 base_url: str,
                 rate_limiter=None,
                 timeout: float = 30,
                 max_retries: int = 3,
                 backoff: float = 1.0,
                 user_agent: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 sleep=time.sleep):
        """
        Initialize the fetcher.

        Args:
            base_url: Base CGI URL; relative inputs such as '?cmd=top' resolve against it
            rate_limiter: Object with an acquire() method called before every attempt
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts for transient failures
            backoff: Base delay in seconds for exponential backoff
            user_agent: User-Agent header value
            session: Pre-configured requests session (tests inject fakes here)
        """
        self.base_url = base_url
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self.logger = logging.getLogger(__name__)
        self._sleep = sleep

        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': user_agent or f'cgifreeze/{__version__} (Static Site Archiver)',
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Encoding': 'gzip, deflate',
            'Connection': 'keep-alive',
        })

    def build_url(self, target: str) -> str:
        """
        Turn a configured page reference into an absolute URL.

        'http://...' is returned as-is, '?cmd=top' is attached to the CGI
        script, anything else is resolved against the base URL.
        """
        if target.startswith(('http://', 'https://')):
            return target
        if not target:
            return self.base_url
        if target.startswith('?'):
            return get_validator().join_query(self.base_url, target)
        return urljoin(self.base_url, target)

    def fetch(self, target: str) -> FetchResult:
        """
        Fetch a URL.

        Returns:
            FetchResult with the raw body bytes

        Raises:
            FetchError: on transport failure or a non-2xx final status
        """
        url = self.build_url(target)
        self.logger.debug(f"Fetching: {url}")

        last_error = ''
        last_status: Optional[int] = None
        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                delay = self.backoff * (2 ** (attempt - 1))  # Exponential backoff
                self.logger.info(f"Retry {attempt} for {url} after {delay:.1f}s delay")
                self._sleep(delay)

            if self.rate_limiter:
                self.rate_limiter.acquire()

            try:
                response = self.session.get(url, timeout=self.timeout)
            except requests.exceptions.Timeout:
                last_error = 'timeout'
                last_status = None
                self.logger.warning(f"Timeout retrieving {url} (attempt {attempt + 1})")
                continue
            except requests.exceptions.ConnectionError as e:
                last_error = f'connection failed: {e}'
                last_status = None
                self.logger.warning(f"Connection error for {url} (attempt {attempt + 1}): {e}")
                continue
            except requests.exceptions.RequestException as e:
                self.logger.error(f"Request error for {url}: {e}")
                raise FetchError(f"Request error: {e}", url=url) from e

            status = response.status_code
            if 200 <= status < 300:
                result = FetchResult(url=url, status=status, body=response.content,
                                     headers=dict(response.headers))
                self.logger.debug(f"Retrieved {len(result.body)} bytes from {url}")
                return result

            last_error = f'HTTP {status}'
            last_status = status
            if status in PERMANENT_STATUS_CODES:
                self.logger.warning(f"Permanent error {status} for {url}, not retrying")
                raise FetchError(f"HTTP {status}: {url}", url=url, status=status)
            if status == 429 or 500 <= status < 600:
                self.logger.warning(f"HTTP {status} for {url} (attempt {attempt + 1})")
                continue
            raise FetchError(f"HTTP {status}: {url}", url=url, status=status)

        self.logger.error(f"Failed to retrieve {url} after {self.max_retries + 1} attempts: {last_error}")
        raise FetchError(f"{last_error}: {url}", url=url, status=last_status)

    def close(self):
        """Close the HTTP session."""
        self.session.close()
        self.logger.info("Fetcher session closed")
