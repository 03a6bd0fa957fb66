"""
Tests for HTTP retrieval with retry, using a scripted fake session.
"""

import pytest
import requests

from cgifreeze.core.exceptions import FetchError
from cgifreeze.core.fetcher import Fetcher, FetchResult

from conftest import BASE_URL


class FakeResponse:
    def __init__(self, status_code, content=b"", headers=None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}


class FakeSession:
    """Replays a script of responses or exceptions, one per get()."""

    def __init__(self, script):
        self.script = list(script)
        self.headers = {}
        self.requested = []
        self.closed = False

    def get(self, url, timeout=None):
        self.requested.append(url)
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True


class CountingLimiter:
    def __init__(self):
        self.count = 0

    def acquire(self):
        self.count += 1
        return 0.0


def make_fetcher(script, **kwargs):
    session = FakeSession(script)
    sleeps = []
    limiter = CountingLimiter()
    fetcher = Fetcher(BASE_URL, rate_limiter=limiter, session=session, sleep=sleeps.append, **kwargs)
    return fetcher, session, sleeps, limiter


def test_success_returns_body_and_headers():
    fetcher, session, sleeps, limiter = make_fetcher([
        FakeResponse(200, b"<html>ok</html>", {"Content-Type": "text/html; charset=Shift_JIS"}),
    ])
    result = fetcher.fetch("?cmd=top")

    assert isinstance(result, FetchResult)
    assert result.url == "http://example.com/wolf.cgi?cmd=top"
    assert result.body == b"<html>ok</html>"
    assert result.status == 200
    assert result.headers["Content-Type"] == "text/html; charset=Shift_JIS"
    assert session.requested == ["http://example.com/wolf.cgi?cmd=top"]
    assert limiter.count == 1
    assert sleeps == []


def test_session_headers_identify_the_archiver():
    fetcher, session, _, _ = make_fetcher([], user_agent="test-agent/1.0")
    assert session.headers["User-Agent"] == "test-agent/1.0"


@pytest.mark.parametrize("target,expected", [
    ("?cmd=top", "http://example.com/wolf.cgi?cmd=top"),
    ("", "http://example.com/wolf.cgi"),
    ("css/app.css", "http://example.com/css/app.css"),
    ("https://cdn.example.com/x.png", "https://cdn.example.com/x.png"),
])
def test_build_url(target, expected):
    fetcher, _, _, _ = make_fetcher([])
    assert fetcher.build_url(target) == expected


@pytest.mark.parametrize("status", [403, 404, 410])
def test_permanent_errors_are_not_retried(status):
    fetcher, session, sleeps, _ = make_fetcher([FakeResponse(status)])
    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("?cmd=gone")
    assert excinfo.value.status == status
    assert excinfo.value.url == "http://example.com/wolf.cgi?cmd=gone"
    assert len(session.requested) == 1
    assert sleeps == []


def test_other_client_errors_fail_immediately():
    fetcher, session, _, _ = make_fetcher([FakeResponse(400)])
    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("?cmd=bad")
    assert excinfo.value.status == 400
    assert len(session.requested) == 1


def test_server_errors_are_retried_with_backoff():
    fetcher, session, sleeps, limiter = make_fetcher([
        FakeResponse(503), FakeResponse(500), FakeResponse(200, b"finally"),
    ])
    assert fetcher.fetch("?cmd=top").body == b"finally"
    assert len(session.requested) == 3
    assert sleeps == [1.0, 2.0]
    assert limiter.count == 3


def test_transient_exceptions_exhaust_retries():
    fetcher, session, sleeps, _ = make_fetcher(
        [requests.exceptions.Timeout("slow")] * 2 + [requests.exceptions.ConnectionError("reset")],
        max_retries=2, backoff=0.5,
    )
    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("?cmd=top")
    assert excinfo.value.status is None
    assert "connection failed" in str(excinfo.value)
    assert len(session.requested) == 3
    assert sleeps == [0.5, 1.0]


def test_rate_limited_status_is_reported_after_retries():
    fetcher, session, _, _ = make_fetcher([FakeResponse(429)] * 2, max_retries=1)
    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("?cmd=top")
    assert excinfo.value.status == 429
    assert len(session.requested) == 2


def test_non_transient_request_errors_are_not_retried():
    fetcher, session, _, _ = make_fetcher([requests.exceptions.InvalidURL("bad url")])
    with pytest.raises(FetchError):
        fetcher.fetch("?cmd=top")
    assert len(session.requested) == 1


def test_close_closes_session():
    fetcher, session, _, _ = make_fetcher([])
    fetcher.close()
    assert session.closed
