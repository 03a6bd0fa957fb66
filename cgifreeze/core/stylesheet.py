"""
url(...) reference handling inside CSS text.

Used for downloaded stylesheets (anchored at the stylesheet's own output
path) and for inline <style> blocks and style attributes (anchored at the
page). References that cannot be mapped are left exactly as they were: a
broken background image is better than broken CSS syntax.
"""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import urljoin, urldefrag

from cgifreeze.utils.relative_path import RelativePathCalculator, url_path


CSS_URL_RE = re.compile(r"url\(\s*(['\"]?)(.*?)\1\s*\)", re.IGNORECASE | re.DOTALL)
CSS_CHARSET_RE = re.compile(r'^(\ufeff?)@charset\s+(["\'])[^"\']*\2\s*;', re.IGNORECASE)


def absolutize(value: str, source_url: str) -> Optional[str]:
    """
    Resolve one url() value against the document it appeared in.

    Returns None for empty values, data: URIs and same-document references
    such as url(#gradient). Protocol-relative values (//host/path) take the
    scheme of source_url.
    """
    value = value.strip()
    if not value or value.startswith('#') or value.lower().startswith('data:'):
        return None
    try:
        return urldefrag(urljoin(source_url, value))[0]
    except ValueError:
        return None


def extract_nested(css_text: str, css_source_url: str) -> List[str]:
    """
    Absolute URLs of every url(...) reference in css_text, first-seen order,
    without duplicates.
    """
    urls: List[str] = []
    seen = set()
    for match in CSS_URL_RE.finditer(css_text or ''):
        absolute = absolutize(match.group(2), css_source_url)
        if absolute and absolute not in seen:
            seen.add(absolute)
            urls.append(absolute)
    return urls


def rewrite_nested(css_text: str,
                   css_source_url: str,
                   css_output_path: str,
                   resolver,
                   calculator: RelativePathCalculator) -> str:
    """
    Replace each mappable url(...) value with a path relative to
    css_output_path. Quotes and whitespace around the value are kept, and so
    is a #fragment suffix (sprite.svg#icon).
    """
    if not css_text:
        return css_text

    def repl(match):
        absolute = absolutize(match.group(2), css_source_url)
        if absolute is None:
            return match.group(0)
        target = resolver.resolve(absolute)
        if target is None:
            return match.group(0)
        relative = url_path(calculator.relative(css_output_path, target))
        fragment = urldefrag(match.group(2).strip())[1]
        if fragment:
            relative = f"{relative}#{fragment}"
        whole = match.group(0)
        start = match.start(2) - match.start(0)
        end = match.end(2) - match.start(0)
        return whole[:start] + relative + whole[end:]

    return CSS_URL_RE.sub(repl, css_text)


def declare_utf8(css_text: str) -> str:
    """Point a leading @charset rule at UTF-8, the encoding we persist in."""
    return CSS_CHARSET_RE.sub(lambda m: f'{m.group(1)}@charset "UTF-8";', css_text, count=1)
