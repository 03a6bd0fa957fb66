"""
Tests for url(...) handling in CSS text.
"""

from cgifreeze.core.stylesheet import absolutize, declare_utf8, extract_nested, rewrite_nested
from cgifreeze.utils.relative_path import RelativePathCalculator


class DictResolver:
    def __init__(self, mapping):
        self.mapping = mapping

    def resolve(self, url):
        return self.mapping.get(url)


CSS_URL = "http://example.com/css/app.css"


def test_extract_nested_quoting_and_dedup():
    css = """
    body { background: url(a.png) }
    .b { background: url('b.png') }
    .c { background: URL("c.png") }
    .d { background: url( d.png ) }
    .e { background: url(a.png) }
    .f { background: url(data:image/png;base64,AAAA) }
    .g { background: url() }
    .h { background: url(../img/h.gif#frag) }
    """
    assert extract_nested(css, CSS_URL) == [
        "http://example.com/css/a.png",
        "http://example.com/css/b.png",
        "http://example.com/css/c.png",
        "http://example.com/css/d.png",
        "http://example.com/img/h.gif",
    ]


def test_protocol_relative_takes_stylesheet_scheme():
    assert extract_nested("a{background:url(//cdn.other.com/x.png)}", "https://example.com/app.css") == [
        "https://cdn.other.com/x.png",
    ]


def test_absolutize():
    assert absolutize("  ", CSS_URL) is None
    assert absolutize("DATA:font/woff;base64,AA", CSS_URL) is None
    assert absolutize("/img/x.png", CSS_URL) == "http://example.com/img/x.png"


def test_rewrite_relative_to_stylesheet_location():
    resolver = DictResolver({
        "http://example.com/css/app.css": "assets/css/app.css",
        "http://example.com/css/bg.png": "assets/images/bg.png",
    })
    out = rewrite_nested("body { background: url(bg.png) }", CSS_URL, "assets/css/app.css",
                         resolver, RelativePathCalculator())
    assert out == "body { background: url(../images/bg.png) }"


def test_rewrite_keeps_quotes_and_whitespace():
    resolver = DictResolver({"http://example.com/img/x.png": "assets/img/x.png"})
    css = "a { b: url( '/img/x.png' ) }"
    out = rewrite_nested(css, CSS_URL, "assets/css/app.css", resolver, RelativePathCalculator())
    assert out == "a { b: url( '../img/x.png' ) }"


def test_rewrite_leaves_unmappable_references_unchanged():
    resolver = DictResolver({})
    css = 'a{b:url("http://other.com/x.png")} c{d:url(data:image/gif;base64,R0l)} e{f:url(missing.png)}'
    out = rewrite_nested(css, CSS_URL, "assets/css/app.css", resolver, RelativePathCalculator())
    assert out == css


def test_rewrite_empty_text():
    assert rewrite_nested("", CSS_URL, "assets/css/app.css", DictResolver({}), RelativePathCalculator()) == ""


def test_declare_utf8():
    assert declare_utf8('@charset "Shift_JIS";\nbody{}') == '@charset "UTF-8";\nbody{}'
    assert declare_utf8("\ufeff@charset 'euc-jp';a{}") == '\ufeff@charset "UTF-8";a{}'
    assert declare_utf8("body{}") == "body{}"
    # only a leading rule is a charset declaration
    assert declare_utf8('a{} @charset "x";') == 'a{} @charset "x";'


def test_same_document_references_are_not_urls():
    css = "path { fill: url(#grad); filter: url( '#blur' ) } a { background: url(x.png) }"
    assert absolutize("#grad", CSS_URL) is None
    assert extract_nested(css, CSS_URL) == ["http://example.com/css/x.png"]


def test_rewrite_leaves_same_document_references_alone():
    # A resolver that maps the stylesheet itself would turn url(#grad) into url(.)
    resolver = DictResolver({CSS_URL: "assets/css/app.css"})
    css = "path { fill: url(#grad) }"
    assert rewrite_nested(css, CSS_URL, "assets/css/app.css", resolver, RelativePathCalculator()) == css


def test_rewrite_keeps_fragment_suffix():
    resolver = DictResolver({"http://example.com/img/sprite.svg": "assets/img/sprite.svg"})
    css = "i { background: url(../img/sprite.svg#icon-home) }"
    out = rewrite_nested(css, CSS_URL, "assets/css/app.css", resolver, RelativePathCalculator())
    assert out == "i { background: url(../img/sprite.svg#icon-home) }"


def test_rewritten_paths_are_percent_encoded():
    resolver = DictResolver({"http://example.com/img/a%23b%20c.png": "assets/img/a#b c.png"})
    css = "i { background: url(/img/a%23b%20c.png) }"
    out = rewrite_nested(css, CSS_URL, "assets/css/app.css", resolver, RelativePathCalculator())
    assert out == "i { background: url(../img/a%23b%20c.png) }"
