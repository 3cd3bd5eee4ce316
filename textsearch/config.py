"""Engine configuration.

The configuration is an immutable value built once and handed to the engine
at construction time. It can be loaded from YAML files and overridden with
``TEXTSEARCH_*`` environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import msgspec
import yaml

from .exceptions import ConfigError


class FieldSpec(msgspec.Struct, frozen=True, kw_only=True):
    """Indexing settings for a single document field."""

    weight: float = 1.0
    analyzer: str = "standard"


class AnalyzerSpec(msgspec.Struct, frozen=True, kw_only=True):
    """Declaration of a custom analyzer built from a base analyzer and filters."""

    tokenizer: str = "standard"
    filters: list[str] = msgspec.field(default_factory=list)


def _default_index_fields() -> dict[str, FieldSpec]:
    return {
        "title": FieldSpec(weight=3.0, analyzer="standard"),
        "content": FieldSpec(weight=1.0, analyzer="standard"),
        "tags": FieldSpec(weight=2.0, analyzer="keyword"),
        "category": FieldSpec(weight=1.5, analyzer="keyword"),
    }


DEFAULT_SORTABLE_FIELDS = (
    "name",
    "created_at",
    "updated_at",
    "price",
    "rating",
    "relevance",
    "popularity",
)


class SearchConfig(msgspec.Struct, frozen=True, kw_only=True):
    """Recognized engine options."""

    min_word_length: int = 3
    max_results: int = 1000
    cache_ttl: int = 3600
    highlight_tag: str = "mark"
    fuzzy_distance: int = 2
    boost_recent: bool = False
    index_fields: dict[str, FieldSpec] = msgspec.field(
        default_factory=_default_index_fields
    )
    sortable_fields: tuple[str, ...] = DEFAULT_SORTABLE_FIELDS
    analyzers: dict[str, AnalyzerSpec] = msgspec.field(default_factory=dict)

    def __post_init__(self):
        if self.max_results < 1:
            raise ConfigError("max_results must be at least 1")
        if self.fuzzy_distance < 0:
            raise ConfigError("fuzzy_distance cannot be negative")
        if self.cache_ttl < 0:
            raise ConfigError("cache_ttl cannot be negative")
        if not self.highlight_tag.isalnum():
            raise ConfigError(f"Invalid highlight tag: {self.highlight_tag!r}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SearchConfig:
        """Build a configuration from a plain mapping.

        Keys missing from ``data`` keep their defaults. ``index_fields``
        replaces the default field map as a whole.
        """
        try:
            return msgspec.convert(data, cls)
        except msgspec.ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return msgspec.to_builtins(self)


def get_config_paths() -> list[Path]:
    """Configuration file locations in precedence order (last wins)."""
    xdg_config_home = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return [
        xdg_config_home / "textsearch" / "config.yaml",
        Path("textsearch.yaml"),
    ]


def read_config_file(path: Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Error reading config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


_ENV_OVERRIDES = {
    "TEXTSEARCH_MIN_WORD_LENGTH": ("min_word_length", int),
    "TEXTSEARCH_MAX_RESULTS": ("max_results", int),
    "TEXTSEARCH_CACHE_TTL": ("cache_ttl", int),
    "TEXTSEARCH_HIGHLIGHT_TAG": ("highlight_tag", str),
    "TEXTSEARCH_FUZZY_DISTANCE": ("fuzzy_distance", int),
    "TEXTSEARCH_BOOST_RECENT": (
        "boost_recent",
        lambda v: v.strip().lower() in ("1", "true", "yes", "on"),
    ),
}


def load_config(path: Path | None = None) -> SearchConfig:
    """Load configuration from files and environment variables.

    Args:
        path: Explicit config file. When given, default locations are skipped.

    Returns:
        Validated, immutable configuration
    """
    data: dict[str, Any] = {}

    paths = [path] if path is not None else get_config_paths()
    for config_path in paths:
        if config_path.exists():
            data = _deep_merge(data, read_config_file(config_path))
        elif path is not None:
            raise ConfigError(f"Config file not found: {config_path}")

    for env_name, (key, convert) in _ENV_OVERRIDES.items():
        if (raw := os.environ.get(env_name)) is not None:
            try:
                data[key] = convert(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {env_name}: {raw!r}") from e

    return SearchConfig.from_dict(data)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result
