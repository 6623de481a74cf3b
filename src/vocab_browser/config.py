"""
Configuration file system for vocab-browser.

Configuration is merged from several locations, lowest priority first:
1. Built-in defaults
2. /etc/vocab-browser/config.yaml or config.json
3. ~/.config/vocab-browser/config.yaml or config.json
4. ./config.yaml, ./config.json, ./vocab-browser.yaml or ./vocab-browser.json
5. Environment variables VOCAB_BROWSER_* (highest priority)

YAML is checked before JSON at each location and only the first file found in
a directory is used.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any

CONFIG_FILENAMES = ["config.yaml", "config.json", "vocab-browser.yaml", "vocab-browser.json"]
CONFIG_USER_FILENAMES = ["config.yaml", "config.json"]
ENV_PREFIX = "VOCAB_BROWSER_"

DEFAULTS: dict[str, Any] = {
    "lang": "en",
    "vocabularies_file": "vocabularies.ttl",
    "sparql": {
        "endpoint": "http://localhost:3030/ds/sparql",
        "dialect": "generic",
        "timeout": 30.0,
    },
    "search": {
        "limit": 100,  # hits per search_concepts call
        "info_limit": 20,  # hits per search_concepts_and_info call
    },
    "breadcrumbs": {
        "depth": 1000,  # LIMIT of the transitive broader query
    },
    "cache": {
        "enabled": True,
        "dir": str(Path.home() / ".cache" / "vocab-browser"),
        "ttl_days": 30,
    },
    "api": {"host": "127.0.0.1", "port": 8765},
}


def _get_config_dirs() -> list[Path]:
    """Config directories in merge order (lowest priority first)."""
    return [
        Path("/etc/vocab-browser"),
        Path.home() / ".config" / "vocab-browser",
        Path.cwd(),
    ]


def find_config_files() -> list[Path]:
    """Find all existing config files, in merge order (lowest priority first)."""
    found = []
    for dir_path in _get_config_dirs():
        filenames = CONFIG_FILENAMES if dir_path == Path.cwd() else CONFIG_USER_FILENAMES
        for filename in filenames:
            path = dir_path / filename
            if path.exists():
                found.append(path)
                break
    return found


def find_config_file() -> Path | None:
    """Return the config file that takes precedence, or None."""
    files = find_config_files()
    return files[-1] if files else None


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base in place and return base."""
    for key, value in override.items():
        if isinstance(base.get(key), dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _load_config_file(path: Path) -> dict[str, Any]:
    """Load a single YAML or JSON config file.

    Raises:
        ImportError: If a YAML file is found but PyYAML is not installed.
        json.JSONDecodeError: If a JSON file is malformed.
    """
    if path.suffix in (".yaml", ".yml"):
        try:
            import yaml
        except ImportError as e:
            raise ImportError(
                "PyYAML required for .yaml config files. Install with: pip install pyyaml"
            ) from e
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load config from file(s), merged over the defaults.

    Args:
        path: Explicit config file. When given, only this file is read (plus
              defaults and environment). Otherwise all standard locations are
              merged.

    Returns:
        The merged configuration dictionary.
    """
    config = copy.deepcopy(DEFAULTS)

    if path is not None:
        paths = [path] if path.exists() else []
    else:
        paths = find_config_files()
    for config_path in paths:
        _deep_merge(config, _load_config_file(config_path))

    _apply_env_overrides(config)
    return config


def _apply_env_overrides(config: dict[str, Any]) -> None:
    """Apply VOCAB_BROWSER_* variables, e.g. VOCAB_BROWSER_SPARQL__ENDPOINT."""
    for key, value in os.environ.items():
        if key.startswith(ENV_PREFIX):
            _set_nested_value(config, key[len(ENV_PREFIX):].lower(), value)


def _set_nested_value(config: dict, key: str, value: str) -> None:
    """Set a nested value using double-underscore notation ("api__port")."""
    *parents, final_key = key.split("__")
    target = config
    for part in parents:
        target = target.setdefault(part, {})
    target[final_key] = _convert_value(value)


def _convert_value(value: str) -> Any:
    """Convert an environment string to bool, int or float where possible."""
    if value.lower() in ("true", "yes", "1"):
        return True
    if value.lower() in ("false", "no", "0"):
        return False
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            pass
    return value


def get_config_value(config: dict[str, Any], key: str, default: Any = None) -> Any:
    """Get a config value using dot notation ("sparql.endpoint")."""
    target: Any = config
    for part in key.split("."):
        if isinstance(target, dict) and part in target:
            target = target[part]
        else:
            return default
    return target


class Config:
    """Configuration holder with convenient access methods."""

    def __init__(self, path: Path | None = None):
        if path is not None:
            self._paths = [path] if path.exists() else []
        else:
            self._paths = find_config_files()
        self._data = load_config(path)

    @property
    def path(self) -> Path | None:
        """Return the highest-priority loaded config file, or None."""
        return self._paths[-1] if self._paths else None

    @property
    def paths(self) -> list[Path]:
        return self._paths.copy()

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return get_config_value(self._data, key, default)

    @property
    def lang(self) -> str:
        """Return the default content language."""
        value = self.get("lang", "en")
        # YAML parses bare 'no' as boolean False
        if value is False:
            return "no"
        return str(value) if value else "en"

    @property
    def vocabularies_file(self) -> Path:
        """Return the Turtle file describing the configured vocabularies."""
        return Path(self.get("vocabularies_file", "vocabularies.ttl")).expanduser()

    @property
    def sparql_endpoint(self) -> str:
        return self.get("sparql.endpoint", DEFAULTS["sparql"]["endpoint"])

    @property
    def sparql_dialect(self) -> str:
        return self.get("sparql.dialect", "generic")

    @property
    def sparql_timeout(self) -> float:
        return float(self.get("sparql.timeout", 30.0))

    @property
    def search_limit(self) -> int:
        return int(self.get("search.limit", 100))

    @property
    def search_info_limit(self) -> int:
        return int(self.get("search.info_limit", 20))

    @property
    def breadcrumb_depth(self) -> int:
        """Return the LIMIT used by the transitive broader query."""
        return int(self.get("breadcrumbs.depth", 1000))

    @property
    def cache_enabled(self) -> bool:
        return bool(self.get("cache.enabled", True))

    @property
    def cache_dir(self) -> Path:
        return Path(self.get("cache.dir", DEFAULTS["cache"]["dir"])).expanduser()

    @property
    def cache_ttl(self) -> int:
        """Return the cache TTL in seconds."""
        return int(self.get("cache.ttl_days", 30)) * 24 * 60 * 60

    @property
    def api_host(self) -> str:
        return self.get("api.host", "127.0.0.1")

    @property
    def api_port(self) -> int:
        return int(self.get("api.port", 8765))
