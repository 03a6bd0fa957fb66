"""
URL to output path mapping.

A CGI site exposes an open-ended URL space (wolf.cgi?cmd=vlog&vil=12&turn=3)
that has to be folded onto a finite static file tree. Static assets keep
their directory structure under an asset root; everything else is mapped by
an ordered list of configured rules, first match wins.
"""

from __future__ import annotations

import re
import logging
import posixpath
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple, Union
from urllib.parse import unquote_to_bytes, urlparse

from cgifreeze.core.exceptions import MappingRuleError
from cgifreeze.utils.encoding import normalize_encoding
from cgifreeze.utils.validators import get_validator


ASSET_EXTENSIONS = frozenset([
    '.css', '.js',
    '.png', '.jpg', '.jpeg', '.gif', '.svg', '.webp', '.ico', '.bmp',
    '.woff', '.woff2', '.ttf', '.eot', '.otf',
])

DEFAULT_ASSET_ROOT = 'assets'

NAMED_PLACEHOLDER = re.compile(r'\{([A-Za-z_][A-Za-z0-9_]*)\}')
NUMBERED_PLACEHOLDER = re.compile(r'\{(\d+)\}')


def is_safe_output_path(path: Optional[str]) -> bool:
    """An output path is relative and has no empty, '.' or '..' segment."""
    if not path or path.startswith('/') or '\\' in path:
        return False
    return all(seg not in ('', '.', '..') for seg in path.split('/'))


def _check_template(template: Any, rule_index: int) -> str:
    if not isinstance(template, str) or not template.strip():
        raise MappingRuleError(f"path_mapping[{rule_index}]: 'path' must be a non-empty string")
    if template.startswith('/'):
        raise MappingRuleError(f"path_mapping[{rule_index}]: 'path' must be relative: {template}")
    if '..' in template.split('/'):
        raise MappingRuleError(f"path_mapping[{rule_index}]: 'path' must not contain '..': {template}")
    return template


def _compile(pattern: Any, rule_index: int) -> Pattern:
    if not isinstance(pattern, str) or not pattern:
        raise MappingRuleError(f"path_mapping[{rule_index}]: regex must be a non-empty string")
    try:
        return re.compile(pattern)
    except re.error as e:
        raise MappingRuleError(f"path_mapping[{rule_index}]: invalid regex {pattern!r}: {e}")


@dataclass(frozen=True)
class ParamPredicate:
    """Exact value, or a regex that must match the whole parameter value."""
    name: str
    exact: Optional[str] = None
    regex: Optional[Pattern] = None

    def bind(self, value: str) -> Optional[str]:
        if self.regex is None:
            return value if value == self.exact else None
        match = self.regex.fullmatch(value)
        if match is None:
            return None
        if self.regex.groups:
            return match.group(1)
        return value


@dataclass(frozen=True)
class ParamRule:
    predicates: Tuple[ParamPredicate, ...]
    template: str
    exact: bool = False

    def apply(self, path: str, query: str, params: Mapping[str, str]) -> Optional[str]:
        if self.exact and len(params) != len(self.predicates):
            return None
        bound: Dict[str, str] = {}
        for predicate in self.predicates:
            if predicate.name not in params:
                return None
            value = predicate.bind(params[predicate.name])
            if value is None:
                return None
            bound[predicate.name] = value
        return NAMED_PLACEHOLDER.sub(lambda m: bound[m.group(1)], self.template)


@dataclass(frozen=True)
class RegexRule:
    """Legacy rule: regex searched in 'path?query', captures fill {1}, {2}..."""
    pattern: Pattern
    template: str

    def apply(self, path: str, query: str, params: Mapping[str, str]) -> Optional[str]:
        subject = f"{path}?{query}"
        if subject.startswith('?'):
            subject = subject[1:]
        match = self.pattern.search(subject)
        if match is None:
            return None
        groups = match.groups()
        return NUMBERED_PLACEHOLDER.sub(lambda m: groups[int(m.group(1)) - 1] or '', self.template)


MappingRule = Union[ParamRule, RegexRule]


def build_rule(spec: Mapping[str, Any], index: int = 0) -> MappingRule:
    """
    Compile one path_mapping entry from configuration.

    Raises:
        MappingRuleError: if the entry is malformed
    """
    if not isinstance(spec, Mapping):
        raise MappingRuleError(f"path_mapping[{index}] must be a mapping")

    has_params = 'params' in spec
    has_pattern = 'pattern' in spec
    if has_params == has_pattern:
        raise MappingRuleError(f"path_mapping[{index}] needs exactly one of 'params' or 'pattern'")

    template = _check_template(spec.get('path'), index)

    if has_pattern:
        pattern = _compile(spec['pattern'], index)
        for number in NUMBERED_PLACEHOLDER.findall(template):
            if int(number) < 1 or int(number) > pattern.groups:
                raise MappingRuleError(
                    f"path_mapping[{index}]: placeholder {{{number}}} has no capture group in {spec['pattern']!r}"
                )
        if NAMED_PLACEHOLDER.search(template):
            raise MappingRuleError(f"path_mapping[{index}]: pattern rules only take numbered placeholders")
        return RegexRule(pattern=pattern, template=template)

    params = spec['params']
    if not isinstance(params, Mapping) or not params:
        raise MappingRuleError(f"path_mapping[{index}]: 'params' must be a non-empty mapping")

    predicates: List[ParamPredicate] = []
    for name, value in params.items():
        name = str(name)
        if isinstance(value, Mapping):
            if set(value.keys()) != {'regex'}:
                raise MappingRuleError(f"path_mapping[{index}]: predicate for '{name}' only accepts 'regex'")
            predicates.append(ParamPredicate(name=name, regex=_compile(value['regex'], index)))
        elif isinstance(value, (str, int, float)) and not isinstance(value, bool):
            predicates.append(ParamPredicate(name=name, exact=str(value)))
        else:
            raise MappingRuleError(f"path_mapping[{index}]: unsupported predicate for '{name}': {value!r}")

    names = {p.name for p in predicates}
    for placeholder in NAMED_PLACEHOLDER.findall(template):
        if placeholder not in names:
            raise MappingRuleError(f"path_mapping[{index}]: placeholder {{{placeholder}}} is not a parameter")
    if NUMBERED_PLACEHOLDER.search(template):
        raise MappingRuleError(f"path_mapping[{index}]: params rules only take named placeholders")

    return ParamRule(predicates=tuple(predicates), template=template, exact=bool(spec.get('exact', False)))


def build_rules(specs: Optional[Sequence[Mapping[str, Any]]]) -> Tuple[MappingRule, ...]:
    if specs is None:
        return ()
    if not isinstance(specs, (list, tuple)):
        raise MappingRuleError("path_mapping must be a list")
    return tuple(build_rule(spec, i) for i, spec in enumerate(specs))


def decode_component(text: str, encoding: str = 'utf-8') -> str:
    """
    Percent-decode a URL component with the site encoding (cp932, euc_jp...).
    A component that does not decode cleanly is returned as written.
    """
    if '%' not in text:
        return text
    try:
        return unquote_to_bytes(text.encode(encoding)).decode(encoding)
    except (UnicodeEncodeError, UnicodeDecodeError):
        return text


def _query_pairs(query: str):
    for pair in query.split('&'):
        if pair:
            name, _, value = pair.partition('=')
            yield name.replace('+', ' '), value


def parse_query(query: str, encoding: str = 'utf-8') -> Dict[str, str]:
    """Ordered parameter mapping; the first occurrence of a repeated name wins."""
    params: Dict[str, str] = {}
    for name, value in _query_pairs(query):
        value = decode_component(value.replace('+', ' '), encoding)
        params.setdefault(decode_component(name, encoding), value)
    return params


def raw_query_values(query: str, encoding: str = 'utf-8') -> Dict[str, str]:
    """Like parse_query, but values stay exactly as they appear in the URL."""
    params: Dict[str, str] = {}
    for name, value in _query_pairs(query):
        params.setdefault(decode_component(name, encoding), value)
    return params


class PathResolver:
    """
    Maps absolute site URLs to output paths inside the archive tree.

    Resolution is a pure function of the URL, the rule set and the asset
    extension set; rules are loaded once and never change during a run.
    """

    def __init__(self, base_url: str, rules: Sequence[Any] = (), asset_root: str = DEFAULT_ASSET_ROOT,
                 encoding: str = 'utf-8'):
        self.logger = logging.getLogger(__name__)
        self.validator = get_validator()
        self.base_url = base_url
        self.base_host = (urlparse(base_url).hostname or '').lower()
        self.base_directory = self.validator.base_directory(base_url)
        self.asset_root = asset_root.strip('/') or DEFAULT_ASSET_ROOT
        self.encoding = normalize_encoding(encoding)
        self.rules: Tuple[MappingRule, ...] = tuple(
            r if isinstance(r, (ParamRule, RegexRule)) else build_rule(r, i) for i, r in enumerate(rules)
        )
        self.logger.info(f"PathResolver ready: host={self.base_host}, rules={len(self.rules)}")

    def is_internal(self, url: str) -> bool:
        return self.validator.is_internal(url, self.base_host)

    def is_asset(self, url: str) -> bool:
        try:
            path = urlparse(url).path
        except ValueError:
            return False
        return posixpath.splitext(path)[1].lower() in ASSET_EXTENSIONS

    def resolve(self, url: str) -> Optional[str]:
        """
        Map a URL to its output path.

        Returns:
            Relative output path, or None for external, unmatched or
            malformed URLs
        """
        try:
            parsed = urlparse(self.validator.normalize_url(url))
            host = parsed.hostname
        except ValueError:
            self.logger.debug(f"Malformed URL: {url}")
            return None

        if not self.validator.is_internal_host(host, self.base_host):
            return None

        if posixpath.splitext(parsed.path)[1].lower() in ASSET_EXTENSIONS:
            path = self._asset_path(host, parsed.path)
        else:
            path = self._page_path(parsed.path, parsed.query)

        if path is None:
            self.logger.debug(f"No mapping for: {url}")
            return None
        if not is_safe_output_path(path):
            self.logger.warning(f"Rejected unsafe output path {path!r} for {url}")
            return None
        return path

    def _asset_path(self, host: str, url_path: str) -> Optional[str]:
        path = decode_component(url_path, self.encoding)
        if path.startswith(self.base_directory):
            path = path[len(self.base_directory):]
        segments = [s for s in path.split('/') if s and s != '.']
        if not segments or '..' in segments:
            return None
        if host.lower() != self.base_host:
            segments.insert(0, host.lower())
        return '/'.join([self.asset_root] + segments)

    def _page_path(self, url_path: str, query: str) -> Optional[str]:
        params = parse_query(query, self.encoding)
        for rule in self.rules:
            result = rule.apply(url_path, query, params)
            if result is not None:
                return result.lstrip('/')
        return None
