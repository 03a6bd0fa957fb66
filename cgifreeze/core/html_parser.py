"""
HTML reference extraction.

Parses a decoded page and returns every hyperlink, asset reference and
inline stylesheet fragment as absolute, fragment-free URLs. Each element
that carries a reference is stamped with a numeric handle attribute so the
rewriter can target it in a copy of the tree without re-querying by
attribute value.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple
from urllib.parse import urljoin, urldefrag

from bs4 import BeautifulSoup

from cgifreeze.core.exceptions import ParserError
from cgifreeze.core.references import (
    HANDLE_ATTR, AssetRef, InlineStyle, Link, ParseResult, ReferenceKind,
)
from cgifreeze.core.stylesheet import extract_nested


SKIPPED_LINK_PREFIXES = ('#', 'javascript:', 'mailto:', 'tel:', 'data:')


def parse_srcset(srcset: str) -> List[Tuple[str, str]]:
    """
    Split a srcset attribute into (url, descriptor) candidates.

    >>> parse_srcset('a.png 1x, b.png 2x')
    [('a.png', '1x'), ('b.png', '2x')]
    """
    candidates = []
    for part in srcset.split(','):
        item = part.strip()
        if not item:
            continue
        tokens = item.split(None, 1)
        descriptor = tokens[1].strip() if len(tokens) > 1 else ''
        candidates.append((tokens[0], descriptor))
    return candidates


def format_srcset(candidates: List[Tuple[str, str]]) -> str:
    return ', '.join(f"{url} {descriptor}".strip() for url, descriptor in candidates)


def _is_stylesheet(element) -> bool:
    rel = element.get('rel') or []
    if isinstance(rel, str):
        rel = rel.split()
    return any(token.lower() == 'stylesheet' for token in rel)


class HTMLParser:
    """
    Extracts link and asset records from HTML with BeautifulSoup/lxml.
    """

    def __init__(self, parser_backend: str = 'lxml'):
        self.logger = logging.getLogger(__name__)
        self.parser_backend = parser_backend

    def parse(self, html: str, page_url: str) -> ParseResult:
        """
        Parse a page.

        Args:
            html: Decoded HTML text
            page_url: Absolute URL the page was fetched from

        Returns:
            ParseResult with the stamped document and its references

        Raises:
            ParserError: if the document cannot be parsed
        """
        self.logger.debug(f"Parsing HTML: {page_url}")
        try:
            soup = BeautifulSoup(html, self.parser_backend)
            for stale in soup.find_all(attrs={HANDLE_ATTR: True}):
                del stale[HANDLE_ATTR]

            base_url = self._base_url(soup, page_url)
            self._next_handle = 0

            links = self._extract_links(soup, base_url)
            assets = self._extract_assets(soup, base_url)
            inline_styles = self._extract_inline_styles(soup, base_url)
        except ParserError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to parse HTML for {page_url}: {e}")
            raise ParserError(f"HTML parse error: {e}", url=page_url) from e

        self.logger.debug(
            f"Parsed {page_url}: links={len(links)}, assets={len(assets)}, inline styles={len(inline_styles)}"
        )
        return ParseResult(url=page_url, base_url=base_url, document=soup,
                           links=links, assets=assets, inline_styles=inline_styles)

    def _stamp(self, element) -> int:
        existing = element.get(HANDLE_ATTR)
        if existing is not None:
            return int(existing)
        handle = self._next_handle
        self._next_handle += 1
        element[HANDLE_ATTR] = str(handle)
        return handle

    def _base_url(self, soup: BeautifulSoup, page_url: str) -> str:
        base = soup.find('base', href=True)
        if base and base['href'].strip():
            return urljoin(page_url, base['href'].strip())
        return page_url

    def _resolve(self, value: str, base_url: str) -> Optional[str]:
        value = (value or '').strip()
        if not value:
            return None
        try:
            return urldefrag(urljoin(base_url, value))[0]
        except ValueError:
            return None

    def _extract_links(self, soup: BeautifulSoup, base_url: str) -> List[Link]:
        links: List[Link] = []
        for element in soup.find_all('a', href=True):
            href = element['href'].strip()
            if not href or href.lower().startswith(SKIPPED_LINK_PREFIXES):
                continue
            absolute = self._resolve(href, base_url)
            if not absolute:
                continue
            links.append(Link(url=absolute, handle=self._stamp(element), tag=element.name,
                              attribute='href', text=element.get_text(strip=True)))
        return links

    def _extract_assets(self, soup: BeautifulSoup, base_url: str) -> List[AssetRef]:
        assets: List[AssetRef] = []

        # Stylesheets
        for element in soup.find_all('link', href=True):
            if not _is_stylesheet(element):
                continue
            self._add_asset(assets, element, 'href', ReferenceKind.STYLESHEET, base_url)

        # Scripts
        for element in soup.find_all('script', src=True):
            self._add_asset(assets, element, 'src', ReferenceKind.SCRIPT, base_url)

        # Images
        for element in soup.find_all('img', src=True):
            self._add_asset(assets, element, 'src', ReferenceKind.IMAGE, base_url)

        # srcset candidates on <img> and <picture><source>
        for element in soup.find_all(['img', 'source'], srcset=True):
            for index, (candidate, _) in enumerate(parse_srcset(element['srcset'])):
                if candidate.lower().startswith('data:'):
                    continue
                absolute = self._resolve(candidate, base_url)
                if absolute:
                    assets.append(AssetRef(url=absolute, kind=ReferenceKind.IMAGE,
                                           handle=self._stamp(element), tag=element.name,
                                           attribute='srcset', candidate=index))
        return assets

    def _add_asset(self, assets: List[AssetRef], element, attribute: str,
                   kind: ReferenceKind, base_url: str) -> None:
        value = element[attribute].strip()
        if not value or value.lower().startswith('data:'):
            return
        absolute = self._resolve(value, base_url)
        if absolute:
            assets.append(AssetRef(url=absolute, kind=kind, handle=self._stamp(element),
                                   tag=element.name, attribute=attribute))

    def _extract_inline_styles(self, soup: BeautifulSoup, base_url: str) -> List[InlineStyle]:
        styles: List[InlineStyle] = []

        # <style> blocks
        for element in soup.find_all('style'):
            content = element.string or element.get_text() or ''
            urls = extract_nested(content, base_url)
            if urls:
                styles.append(InlineStyle(urls=urls, handle=self._stamp(element),
                                          tag=element.name, content=content))

        # style="" attributes
        for element in soup.find_all(style=True):
            content = element['style']
            urls = extract_nested(content, base_url)
            if urls:
                styles.append(InlineStyle(urls=urls, handle=self._stamp(element),
                                          tag=element.name, content=content, attribute='style'))
        return styles
