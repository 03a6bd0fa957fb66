"""
Site configuration loading.

Sites are described in a YAML file under a top-level `sites:` mapping. The
path mapping rules are compiled here, so a malformed rule stops the run
before anything is fetched.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple, Union

import yaml

from cgifreeze.core.exceptions import ConfigError, EncodingError
from cgifreeze.core.path_resolver import DEFAULT_ASSET_ROOT, MappingRule, build_rules
from cgifreeze.utils.encoding import normalize_encoding
from cgifreeze.utils.validators import get_validator


ASSET_DEFAULTS = {
    'download': True,
    'types': ['css', 'js', 'images'],
    'root': DEFAULT_ASSET_ROOT,
}

LINK_REWRITE_DEFAULTS = {
    'enabled': True,
    'exclude_domains': [],
    'fallback': '#',
}

DEFAULT_VILLAGE_DAYS = (1, 5)


def _merge_defaults(section: Any, defaults: Dict[str, Any], name: str) -> Dict[str, Any]:
    if section is None:
        section = {}
    if not isinstance(section, Mapping):
        raise ConfigError(f"'{name}' must be a mapping")
    merged = copy.deepcopy(defaults)
    merged.update({str(k): v for k, v in section.items()})
    return merged


@dataclass
class SiteConfig:
    key: str
    name: str
    base_url: str
    encoding: str
    wait_time: float
    assets: Dict[str, Any] = field(default_factory=lambda: dict(ASSET_DEFAULTS))
    link_rewrite: Dict[str, Any] = field(default_factory=lambda: dict(LINK_REWRITE_DEFAULTS))
    pages: Dict[str, Any] = field(default_factory=dict)
    path_mapping: Tuple[MappingRule, ...] = ()

    @classmethod
    def from_dict(cls, key: str, data: Any) -> 'SiteConfig':
        if not isinstance(data, Mapping):
            raise ConfigError(f"Site '{key}' must be a mapping")

        for required in ('name', 'base_url', 'encoding', 'wait_time'):
            if data.get(required) is None:
                raise ConfigError(f"Site '{key}': '{required}' is not set")

        ok, error = get_validator().validate_base_url(data['base_url'])
        if not ok:
            raise ConfigError(f"Site '{key}': invalid base_url: {error}")

        try:
            normalize_encoding(data['encoding'])
        except EncodingError as e:
            raise ConfigError(f"Site '{key}': {e}") from e

        wait_time = data['wait_time']
        if isinstance(wait_time, bool) or not isinstance(wait_time, (int, float)):
            raise ConfigError(f"Site '{key}': 'wait_time' must be a number")
        if wait_time < 0:
            raise ConfigError(f"Site '{key}': 'wait_time' must be 0 or greater")

        pages = data.get('pages') or {}
        if not isinstance(pages, Mapping):
            raise ConfigError(f"Site '{key}': 'pages' must be a mapping")

        config = cls(
            key=key,
            name=str(data['name']),
            base_url=str(data['base_url']).strip(),
            encoding=str(data['encoding']),
            wait_time=float(wait_time),
            assets=_merge_defaults(data.get('assets'), ASSET_DEFAULTS, 'assets'),
            link_rewrite=_merge_defaults(data.get('link_rewrite'), LINK_REWRITE_DEFAULTS, 'link_rewrite'),
            pages={str(k): v for k, v in pages.items()},
            path_mapping=build_rules(data.get('path_mapping') or []),
        )
        config.village_days  # validate eagerly
        return config

    @property
    def is_localhost(self) -> bool:
        return get_validator().is_localhost(self.base_url)

    @property
    def effective_wait_time(self) -> float:
        return 0.0 if self.is_localhost else self.wait_time

    @property
    def asset_types(self) -> List[str]:
        return [str(t) for t in (self.assets.get('types') or [])]

    @property
    def village_days(self) -> Tuple[int, int]:
        days = self.pages.get('village_days', DEFAULT_VILLAGE_DAYS)
        if isinstance(days, int) and not isinstance(days, bool):
            days = (1, days)
        if (not isinstance(days, (list, tuple)) or len(days) != 2
                or not all(isinstance(d, int) and not isinstance(d, bool) for d in days)
                or days[0] > days[1]):
            raise ConfigError(f"Site '{self.key}': 'village_days' must be [first, last] or a day count")
        return int(days[0]), int(days[1])


class ConfigLoader:
    def __init__(self, config_path: Union[str, Path]):
        self.logger = logging.getLogger(__name__)
        self.config_path = Path(config_path)

        self.logger.info(f"Loading configuration: {self.config_path}")
        if not self.config_path.is_file():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self.data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML parse error: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read configuration: {e}") from e

        if not isinstance(self.data, Mapping):
            raise ConfigError("Configuration must be a YAML mapping")
        if not isinstance(self.data.get('sites'), Mapping):
            raise ConfigError("'sites' key is missing or not a mapping")

    def site_names(self) -> List[str]:
        return [str(k) for k in self.data['sites'].keys()]

    def site(self, key: str) -> SiteConfig:
        sites = self.data['sites']
        if key not in sites:
            available = ', '.join(self.site_names())
            raise ConfigError(f"Site '{key}' not found. Available: {available}")
        self.logger.debug(f"Site configuration: {key}")
        return SiteConfig.from_dict(key, sites[key])
