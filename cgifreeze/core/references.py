"""
Reference records extracted from a page.

Each record carries the absolute URL it points at plus a handle to the
element it came from, so the rewriter can find exactly that element again in
its own copy of the document.
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass, field
from typing import List, Optional, Any


HANDLE_ATTR = 'data-cgifreeze-ref'


class ReferenceKind(Enum):
    PAGE = 'page'
    STYLESHEET = 'stylesheet'
    SCRIPT = 'script'
    IMAGE = 'image'
    INLINE_STYLESHEET_RESOURCE = 'inline_stylesheet_resource'

    @property
    def config_type(self) -> str:
        """Name used by the `assets.types` configuration list."""
        if self is ReferenceKind.STYLESHEET:
            return 'css'
        if self is ReferenceKind.SCRIPT:
            return 'js'
        if self in (ReferenceKind.IMAGE, ReferenceKind.INLINE_STYLESHEET_RESOURCE):
            return 'images'
        if self is ReferenceKind.PAGE:
            return 'pages'
        raise ValueError(f"Unhandled reference kind: {self}")


@dataclass
class Link:
    url: str              # Absolute URL, fragment stripped
    handle: int           # Element handle stamped at extraction time
    tag: str
    attribute: str = 'href'
    text: str = ''

    @property
    def is_anchor(self) -> bool:
        return self.url.startswith('#')


@dataclass
class AssetRef:
    url: str
    kind: ReferenceKind
    handle: Optional[int] = None
    tag: str = ''
    attribute: str = 'src'
    candidate: Optional[int] = None   # Position inside a srcset attribute


@dataclass
class InlineStyle:
    urls: List[str]       # Nested URLs, already absolute
    handle: int
    tag: str
    content: str
    attribute: Optional[str] = None   # None for <style> blocks, 'style' for attributes


@dataclass
class ParseResult:
    url: str
    base_url: str
    document: Any                     # BeautifulSoup tree, never mutated after parsing
    links: List[Link] = field(default_factory=list)
    assets: List[AssetRef] = field(default_factory=list)
    inline_styles: List[InlineStyle] = field(default_factory=list)

    def asset_refs(self) -> List[AssetRef]:
        """Element assets followed by resources referenced from inline CSS."""
        refs = list(self.assets)
        for style in self.inline_styles:
            for url in style.urls:
                refs.append(AssetRef(url=url, kind=ReferenceKind.INLINE_STYLESHEET_RESOURCE))
        return refs
