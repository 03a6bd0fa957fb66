"""
Link and asset rewriting for archived pages.

Turns a parsed page into static HTML whose internal references are relative
paths inside the archive tree. Page links are only rewritten when the target
is registered to exist; everything else degrades to a fallback marker so no
link ever points at a file that will not be there. External references are
never touched.
"""

from __future__ import annotations

import copy
import re
import logging
from typing import Dict, Iterable, Optional
from urllib.parse import urldefrag

from cgifreeze.core.exceptions import RewriteError
from cgifreeze.core.path_resolver import PathResolver
from cgifreeze.core.references import HANDLE_ATTR, AssetRef, InlineStyle, Link, ParseResult
from cgifreeze.core.registry import PathRegistry
from cgifreeze.core.html_parser import parse_srcset, format_srcset
from cgifreeze.core.stylesheet import rewrite_nested
from cgifreeze.utils.relative_path import RelativePathCalculator, url_path
from cgifreeze.utils.validators import get_validator


DEFAULT_FALLBACK = '#'

META_CHARSET_RE = re.compile(r'charset\s*=\s*[^\s;"\']+', re.IGNORECASE)


class LinkRewriter:
    def __init__(self,
                 resolver: PathResolver,
                 registry: PathRegistry,
                 calculator: Optional[RelativePathCalculator] = None,
                 fallback: str = DEFAULT_FALLBACK,
                 exclude_domains: Iterable[str] = (),
                 enabled: bool = True):
        self.logger = logging.getLogger(__name__)
        self.validator = get_validator()
        self.resolver = resolver
        self.registry = registry
        self.calculator = calculator or RelativePathCalculator()
        self.fallback = fallback
        self.exclude_domains = tuple(d.lower() for d in exclude_domains)
        self.enabled = enabled

    def rewrite(self, parse_result: ParseResult, current_path: str) -> str:
        """
        Produce the final HTML for a page.

        Args:
            parse_result: Parser output; its document is left untouched
            current_path: Output path of the page being written

        Returns:
            Serialized HTML

        Raises:
            RewriteError: on any internal failure. No partial document is
                returned, so the caller must not persist the page.
        """
        self.logger.debug(f"Rewriting {parse_result.url} -> {current_path}")
        try:
            doc = copy.copy(parse_result.document)
            elements = {int(el[HANDLE_ATTR]): el for el in doc.find_all(attrs={HANDLE_ATTR: True})}

            if self.enabled:
                for link in parse_result.links:
                    self._rewrite_link_attribute(elements, link, current_path)
                for asset in parse_result.assets:
                    self._rewrite_asset_attribute(elements, asset, current_path)
                for style in parse_result.inline_styles:
                    self._rewrite_inline_style(elements, style, parse_result.base_url, current_path)
                self._declare_utf8(doc)

            for element in elements.values():
                del element[HANDLE_ATTR]

            html = str(doc)
        except RewriteError as e:
            e.url = e.url or parse_result.url
            e.output_path = e.output_path or current_path
            raise
        except Exception as e:
            self.logger.error(f"Failed to rewrite {parse_result.url}: {e}")
            raise RewriteError(f"Rewrite failed: {e}", url=parse_result.url, output_path=current_path) from e

        self.logger.debug(
            f"Rewrote {current_path}: links={len(parse_result.links)}, assets={len(parse_result.assets)}"
        )
        return html

    def is_external(self, url: str) -> bool:
        host = self.validator.extract_host(url)
        if not self.validator.is_internal_host(host, self.resolver.base_host):
            return True
        return any(self.validator.is_internal_host(host, d) for d in self.exclude_domains)

    def rewrite_link(self, link: Link, current_path: str) -> Optional[str]:
        """
        New href for a hyperlink, or None to leave the attribute untouched.
        """
        if link.is_anchor or self.is_external(link.url):
            return None
        target = self.resolver.resolve(link.url)
        if target is None or target not in self.registry:
            return self.fallback
        return url_path(self.calculator.relative(current_path, target))

    def rewrite_asset(self, url: str, current_path: str) -> Optional[str]:
        """
        New value for an asset reference, or None to leave it untouched.
        Assets are acquired independently of the page registry.
        """
        if self.is_external(url):
            return None
        target = self.resolver.resolve(url)
        if target is None:
            return self.fallback
        return url_path(self.calculator.relative(current_path, target))

    def _element(self, elements: Dict[int, object], handle: Optional[int], tag: str):
        element = elements.get(handle)
        if element is None:
            raise RewriteError(f"Element handle {handle} not found in document copy")
        if element.name != tag:
            raise RewriteError(f"Element handle {handle} is <{element.name}>, expected <{tag}>")
        return element

    def _rewrite_link_attribute(self, elements, link: Link, current_path: str) -> None:
        element = self._element(elements, link.handle, link.tag)
        new_url = self.rewrite_link(link, current_path)
        if new_url is None:
            return
        if new_url != self.fallback:
            fragment = urldefrag(element.get(link.attribute, '').strip())[1]
            if fragment:
                new_url = f"{new_url}#{fragment}"
        element[link.attribute] = new_url

    def _rewrite_asset_attribute(self, elements, asset: AssetRef, current_path: str) -> None:
        element = self._element(elements, asset.handle, asset.tag)
        new_url = self.rewrite_asset(asset.url, current_path)
        if new_url is None:
            return
        if asset.candidate is None:
            element[asset.attribute] = new_url
            return
        candidates = parse_srcset(element.get(asset.attribute, ''))
        if asset.candidate >= len(candidates):
            raise RewriteError(f"srcset candidate {asset.candidate} missing on <{asset.tag}>")
        _, descriptor = candidates[asset.candidate]
        candidates[asset.candidate] = (new_url, descriptor)
        element[asset.attribute] = format_srcset(candidates)

    def _rewrite_inline_style(self, elements, style: InlineStyle, base_url: str, current_path: str) -> None:
        element = self._element(elements, style.handle, style.tag)
        rewritten = rewrite_nested(style.content, base_url, current_path, self.resolver, self.calculator)
        if rewritten == style.content:
            return
        if style.attribute:
            element[style.attribute] = rewritten
        else:
            element.string = rewritten

    def _declare_utf8(self, doc) -> None:
        """Pages are persisted as UTF-8; make the declared charset agree."""
        for meta in doc.find_all('meta'):
            if meta.get('charset'):
                meta['charset'] = 'utf-8'
            elif (meta.get('http-equiv') or '').lower() == 'content-type' and meta.get('content'):
                meta['content'] = META_CHARSET_RE.sub('charset=utf-8', meta['content'])
