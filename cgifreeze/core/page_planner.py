"""
Page enumeration for a site.

Pages are described by query templates in the site configuration
(`?cmd=vlog&vil={village_id}&turn={day}`); the planner expands them for the
requested ids and asks the path resolver where each page goes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence
from urllib.parse import quote, urljoin, urlparse

from cgifreeze.core.exceptions import ArchiverError
from cgifreeze.core.path_resolver import PathResolver, parse_query, raw_query_values
from cgifreeze.utils.config import SiteConfig
from cgifreeze.utils.encoding import decode
from cgifreeze.utils.validators import get_validator


VILLAGE_ID = '{village_id}'
USER_ID = '{user_id}'
DAY = '{day}'


@dataclass
class PlannedPage:
    url: str
    output_path: Optional[str]      # None when no mapping rule matches
    group: str                      # index | villages | users | static


def _expand(template: str, values: Dict[str, object]) -> str:
    for placeholder, value in values.items():
        template = template.replace(placeholder, str(value))
    return template


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        value = str(value)
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class PagePlanner:
    def __init__(self, site: SiteConfig, resolver: PathResolver, fetcher=None, parser=None):
        self.logger = logging.getLogger(__name__)
        self.site = site
        self.resolver = resolver
        self.fetcher = fetcher
        self.parser = parser
        self.validator = get_validator()

    def page_url(self, query: str) -> str:
        if query.startswith(('http://', 'https://')):
            return query
        if query.startswith('?') or not query:
            return self.validator.join_query(self.site.base_url, query)
        return urljoin(self.site.base_url, query)

    def quote_id(self, value: str) -> str:
        """Percent-encode an id in the site encoding; existing %XX escapes are kept."""
        return quote(str(value), safe="%+", encoding=self.resolver.encoding, errors="replace")

    def _page(self, query: str, group: str) -> PlannedPage:
        url = self.page_url(query)
        return PlannedPage(url=url, output_path=self.resolver.resolve(url), group=group)

    def plan(self,
             village_ids: Optional[Sequence[str]] = None,
             user_ids: Optional[Sequence[str]] = None,
             auto_discover: bool = False,
             users_only: bool = False,
             villages_only: bool = False,
             static_only: bool = False) -> List[PlannedPage]:
        """
        Build the ordered list of pages for a run.

        Without a group selector the plan is: index, village list and
        villages, user list and users, static pages. Villages and users are
        only included when ids are given or auto discovery is on.
        """
        if static_only:
            return self.static_pages()
        if users_only:
            return self.user_pages(self._user_ids(user_ids, auto_discover))
        if villages_only:
            return self.village_pages(self._village_ids(village_ids, auto_discover))

        pages = self.index_pages()
        if village_ids or auto_discover:
            pages.extend(self.village_pages(self._village_ids(village_ids, auto_discover)))
        if user_ids or auto_discover:
            pages.extend(self.user_pages(self._user_ids(user_ids, auto_discover)))
        pages.extend(self.static_pages())

        self.logger.info(f"Planned {len(pages)} pages")
        return pages

    def index_pages(self) -> List[PlannedPage]:
        query = self.site.pages.get('index')
        if query is None:
            return []
        return [self._page(str(query), 'index')]

    def village_pages(self, village_ids: Sequence[str]) -> List[PlannedPage]:
        pages = []
        list_query = self.site.pages.get('village_list')
        if list_query:
            pages.append(self._page(str(list_query), 'villages'))

        template = self.site.pages.get('village')
        if not template:
            if village_ids:
                self.logger.warning("Village ids given but no 'village' page template configured")
            return pages

        first, last = self.site.village_days
        for village_id in _dedupe(village_ids):
            for day in range(first, last + 1):
                query = _expand(str(template), {VILLAGE_ID: self.quote_id(village_id), DAY: day})
                pages.append(self._page(query, 'villages'))
        return pages

    def user_pages(self, user_ids: Sequence[str]) -> List[PlannedPage]:
        pages = []
        list_query = self.site.pages.get('user_list')
        if list_query:
            pages.append(self._page(str(list_query), 'users'))

        template = self.site.pages.get('user')
        if not template:
            if user_ids:
                self.logger.warning("User ids given but no 'user' page template configured")
            return pages

        for user_id in _dedupe(user_ids):
            pages.append(self._page(_expand(str(template), {USER_ID: self.quote_id(user_id)}), 'users'))
        return pages

    def static_pages(self) -> List[PlannedPage]:
        return [self._page(str(query), 'static') for query in (self.site.pages.get('static') or [])]

    def _village_ids(self, ids: Optional[Sequence[str]], auto_discover: bool) -> List[str]:
        if ids:
            return _dedupe(ids)
        if not auto_discover:
            return []
        return self._discover_or_empty('village_list', 'village', VILLAGE_ID)

    def _user_ids(self, ids: Optional[Sequence[str]], auto_discover: bool) -> List[str]:
        if ids:
            return _dedupe(ids)
        if not auto_discover:
            return []
        return self._discover_or_empty('user_list', 'user', USER_ID)

    def _discover_or_empty(self, list_key: str, template_key: str, placeholder: str) -> List[str]:
        try:
            return self.discover_ids(list_key, template_key, placeholder)
        except ArchiverError as e:
            self.logger.warning(f"Auto discovery from '{list_key}' failed: {e}")
            return []

    def discover_ids(self, list_key: str, template_key: str, placeholder: str) -> List[str]:
        """
        Collect ids from the links on a list page.

        A link counts when its query carries every literal parameter of the
        item template; the id is the value of the parameter whose template
        value is the placeholder. Fetch and parse errors propagate.
        """
        list_query = self.site.pages.get(list_key)
        template = self.site.pages.get(template_key)
        if not list_query or not template:
            self.logger.warning(f"Auto discovery needs '{list_key}' and '{template_key}' page entries")
            return []
        if self.fetcher is None or self.parser is None:
            raise ValueError("Auto discovery requires a fetcher and a parser")

        encoding = self.resolver.encoding
        template_params = parse_query(urlparse(self.page_url(str(template))).query, encoding)
        id_param = next((k for k, v in template_params.items() if v == placeholder), None)
        if id_param is None:
            self.logger.warning(f"Template '{template_key}' has no {placeholder} parameter")
            return []
        literals = {k: v for k, v in template_params.items() if '{' not in v}

        list_url = self.page_url(str(list_query))
        self.logger.info(f"Discovering ids from {list_url}")
        result = self.fetcher.fetch(list_url)
        parsed = self.parser.parse(decode(result.body, self.site.encoding), list_url)

        ids = []
        for link in parsed.links:
            if not self.resolver.is_internal(link.url):
                continue
            query = urlparse(link.url).query
            params = parse_query(query, encoding)
            if any(params.get(k) != v for k, v in literals.items()):
                continue
            # Undecoded, so the id expands back into the exact same URL
            value = raw_query_values(query, encoding).get(id_param)
            if value:
                ids.append(value)

        ids = _dedupe(ids)
        self.logger.info(f"Discovered {len(ids)} ids for {template_key}")
        return ids
