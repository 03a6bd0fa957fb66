"""
Tests for URL to output path mapping.
"""

import pytest

from cgifreeze.core.exceptions import ConfigError, MappingRuleError
from cgifreeze.core.path_resolver import (
    PathResolver, ParamRule, RegexRule, build_rule, build_rules, is_safe_output_path, parse_query,
    raw_query_values,
)

from conftest import BASE_URL, PATH_MAPPING


def page(query):
    return f"{BASE_URL}?{query}"


def test_param_rules_map_pages(resolver):
    assert resolver.resolve(page("cmd=top")) == "index.html"
    assert resolver.resolve(page("cmd=vlog&vil=12&turn=3")) == "villages/12/day3.html"
    assert resolver.resolve(page("cmd=ulog&uid=alice")) == "users/alice.html"


def test_parameter_order_does_not_matter(resolver):
    assert resolver.resolve(page("turn=3&cmd=vlog&vil=12")) == "villages/12/day3.html"


def test_first_matching_rule_wins(resolver):
    # exact rule refuses the extra parameter, the legacy pattern catches it
    assert resolver.resolve(page("cmd=vlog&vil=12&turn=3&sort=asc")) == "static/vlog.html"
    assert resolver.resolve(page("cmd=rule")) == "static/rule.html"


def test_fragment_is_ignored(resolver):
    assert resolver.resolve(page("cmd=top") + "#news") == "index.html"


def test_duplicate_parameter_first_occurrence_wins(resolver):
    assert resolver.resolve(page("cmd=top&cmd=vlog")) == "index.html"


def test_unmatched_page_is_none(resolver):
    assert resolver.resolve(page("foo=bar")) is None
    assert resolver.resolve(BASE_URL) is None


@pytest.mark.parametrize("url", [
    "http://other.com/wolf.cgi?cmd=top",
    "http://example.com.evil.org/wolf.cgi?cmd=top",
    "https://notexample.com/css/app.css",
    "mailto:someone@example.com",
    "not a url",
    "",
])
def test_external_or_hostless_urls_are_none(resolver, url):
    assert resolver.resolve(url) is None


def test_host_comparison_is_case_insensitive(resolver):
    assert resolver.resolve("http://EXAMPLE.com/wolf.cgi?cmd=top") == "index.html"


def test_assets_keep_their_structure(resolver):
    assert resolver.resolve("http://example.com/css/app.css") == "assets/css/app.css"
    assert resolver.resolve("http://example.com/img/LOGO.PNG") == "assets/img/LOGO.PNG"
    assert resolver.resolve("http://example.com/img/a%20b.png") == "assets/img/a b.png"


def test_asset_query_string_is_ignored(resolver):
    assert resolver.resolve("http://example.com/css/app.css?v=3") == "assets/css/app.css"


def test_subdomain_assets_are_prefixed_with_host(resolver):
    assert resolver.resolve("http://img.example.com/a/b.png") == "assets/img.example.com/a/b.png"


def test_asset_paths_are_relative_to_the_script_directory():
    resolver = PathResolver("http://example.com/game/wolf.cgi", asset_root="static")
    assert resolver.resolve("http://example.com/game/img/a.png") == "static/img/a.png"
    assert resolver.resolve("http://example.com/other/x.png") == "static/other/x.png"


def test_asset_traversal_is_rejected(resolver):
    assert resolver.resolve("http://example.com/img/../../etc/x.png") is None
    assert resolver.resolve("http://example.com/img/%2e%2e/%2e%2e/x.png") is None


def test_expansion_with_traversal_is_rejected():
    resolver = PathResolver(BASE_URL, [
        {"params": {"page": {"regex": "(.+)"}}, "path": "p/{page}/index.html"},
    ])
    assert resolver.resolve(page("page=intro")) == "p/intro/index.html"
    assert resolver.resolve(page("page=..")) is None
    assert resolver.resolve(page("page=../../etc")) is None


def test_no_output_path_contains_parent_segments(resolver):
    urls = [
        page("cmd=vlog&vil=1&turn=1"), page("cmd=../x"), page("cmd=ulog&uid=.."),
        "http://example.com/a/../b.css", "http://example.com/%2e%2e/b.css",
    ]
    for url in urls:
        path = resolver.resolve(url)
        assert path is None or ".." not in path.split("/")


def test_resolution_is_deterministic(resolver):
    url = page("cmd=vlog&vil=7&turn=2")
    assert resolver.resolve(url) == resolver.resolve(url)
    assert PathResolver(BASE_URL, PATH_MAPPING).resolve(url) == resolver.resolve(url)


def test_scalar_predicates_are_compared_as_strings():
    rule = build_rule({"params": {"cmd": "vlog", "vil": 12}, "path": "v12.html"})
    assert rule.apply("/wolf.cgi", "cmd=vlog&vil=12", parse_query("cmd=vlog&vil=12")) == "v12.html"


def test_regex_predicate_without_group_binds_whole_value():
    resolver = PathResolver(BASE_URL, [
        {"params": {"uid": {"regex": "[a-z]+"}}, "path": "users/{uid}.html"},
    ])
    assert resolver.resolve(page("uid=abc")) == "users/abc.html"
    assert resolver.resolve(page("uid=ABC")) is None


def test_build_rules_returns_variants():
    rules = build_rules(PATH_MAPPING)
    assert isinstance(rules[0], ParamRule)
    assert isinstance(rules[-1], RegexRule)
    assert rules[2].exact is True
    assert build_rules(None) == ()


@pytest.mark.parametrize("spec", [
    {"pattern": "([", "path": "x.html"},
    {"pattern": r"cmd=(\w+)", "path": "{2}.html"},
    {"pattern": r"cmd=(\w+)", "path": "{name}.html"},
    {"params": {"cmd": "top"}, "path": "{other}.html"},
    {"params": {"cmd": "top"}, "path": "{1}.html"},
    {"params": {"cmd": "top"}, "pattern": "cmd", "path": "x.html"},
    {"path": "x.html"},
    {"params": {}, "path": "x.html"},
    {"params": {"cmd": "top"}, "path": ""},
    {"params": {"cmd": "top"}},
    {"params": {"cmd": "top"}, "path": "../x.html"},
    {"params": {"cmd": "top"}, "path": "/abs.html"},
    {"params": {"cmd": {"glob": "*"}}, "path": "x.html"},
    {"params": {"cmd": ["a", "b"]}, "path": "x.html"},
    "not a mapping",
])
def test_malformed_rules_are_rejected(spec):
    with pytest.raises(MappingRuleError):
        build_rule(spec)


def test_rule_errors_are_config_errors():
    with pytest.raises(ConfigError):
        build_rules({"params": {"cmd": "top"}, "path": "x.html"})


def test_is_safe_output_path():
    assert is_safe_output_path("villages/1/day1.html")
    assert not is_safe_output_path("")
    assert not is_safe_output_path(None)
    assert not is_safe_output_path("/etc/passwd")
    assert not is_safe_output_path("a/../b.html")
    assert not is_safe_output_path("a//b.html")
    assert not is_safe_output_path("a\\b.html")


UID_RULE = [{"params": {"cmd": "ulog", "uid": {"regex": "(.+)"}}, "path": "users/{uid}.html"}]


def test_legacy_encoded_values_stay_distinct():
    resolver = PathResolver(BASE_URL, UID_RULE, encoding="Shift_JIS")
    # あ and い in Shift_JIS
    assert resolver.resolve(page("cmd=ulog&uid=%82%A0")) == "users/あ.html"
    assert resolver.resolve(page("cmd=ulog&uid=%82%A2")) == "users/い.html"

    euc = PathResolver(BASE_URL, UID_RULE, encoding="EUC-JP")
    assert euc.resolve(page("cmd=ulog&uid=%A4%A2")) == "users/あ.html"


def test_undecodable_value_is_kept_as_written():
    resolver = PathResolver(BASE_URL, UID_RULE)
    first = resolver.resolve(page("cmd=ulog&uid=%82%A0"))
    second = resolver.resolve(page("cmd=ulog&uid=%82%A2"))
    assert first == "users/%82%A0.html"
    assert second == "users/%82%A2.html"


def test_query_parsing_helpers():
    assert parse_query("a=1&b=x+y&a=2&flag", "cp932") == {"a": "1", "b": "x y", "flag": ""}
    assert parse_query("uid=%82%A0", "cp932") == {"uid": "あ"}
    assert raw_query_values("uid=%82%A0&uid=zz", "cp932") == {"uid": "%82%A0"}
