"""
Shared fixtures. Nothing here touches the network: transports are fakes that
serve canned bodies and record every call.
"""

import pytest

from cgifreeze.core.exceptions import FetchError
from cgifreeze.core.fetcher import FetchResult
from cgifreeze.core.path_resolver import PathResolver
from cgifreeze.utils.config import SiteConfig


BASE_URL = "http://example.com/wolf.cgi"

PATH_MAPPING = [
    {"params": {"cmd": "top"}, "path": "index.html"},
    {"params": {"cmd": "vlist"}, "path": "village_list.html"},
    {"params": {"cmd": "vlog", "vil": {"regex": r"(\d+)"}, "turn": {"regex": r"(\d+)"}},
     "exact": True, "path": "villages/{vil}/day{turn}.html"},
    {"params": {"cmd": "ulist"}, "path": "users/index.html"},
    {"params": {"cmd": "ulog", "uid": {"regex": r"(\w+)"}}, "path": "users/{uid}.html"},
    {"pattern": r"\?cmd=(\w+)", "path": "static/{1}.html"},
]


class FakeFetcher:
    """Serves bodies keyed by absolute URL; unknown URLs fail with 404."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = []

    def fetch(self, url):
        self.calls.append(url)
        body = self.pages.get(url)
        if body is None:
            raise FetchError(f"HTTP 404: {url}", url=url, status=404)
        if isinstance(body, str):
            body = body.encode("utf-8")
        return FetchResult(url=url, status=200, body=body)

    def close(self):
        pass


def site_dict(**overrides):
    data = {
        "name": "Example Werewolf",
        "base_url": BASE_URL,
        "encoding": "Shift_JIS",
        "wait_time": 0,
        "pages": {
            "index": "?cmd=top",
            "village_list": "?cmd=vlist",
            "village": "?cmd=vlog&vil={village_id}&turn={day}",
            "village_days": [1, 2],
            "user_list": "?cmd=ulist",
            "user": "?cmd=ulog&uid={user_id}",
            "static": ["?cmd=rule"],
        },
        "path_mapping": PATH_MAPPING,
    }
    data.update(overrides)
    return data


@pytest.fixture
def site():
    return SiteConfig.from_dict("example", site_dict())


@pytest.fixture
def resolver():
    return PathResolver(BASE_URL, PATH_MAPPING)


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()
