"""Layered configuration loading.

Layers, lowest precedence first: built-in defaults, YAML file, ``SOURCERR_*``
environment variables (optionally fed from a ``.env`` file), CLI overrides.
Each layer may be written flat (``max_play_sources: 4``) or sectioned
(``aggregation: {max_play_sources: 4}``); both end up sectioned before merging.
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from .defaults import DEFAULT_CONFIG
from .schema import AppConfig, EnvOverrides

_TOP_LEVEL_KEYS = ("app_name", "environment")

_SECTIONS = ("http", "logging", "cache", "providers", "aggregation")

_FLAT_ALIASES: dict[str, tuple[str, str]] = {
    "http_timeout_seconds": ("http", "timeout_seconds"),
    "http_user_agent": ("http", "user_agent"),
    "http_max_retries": ("http", "max_retries"),
    "log_level": ("logging", "level"),
    "log_format": ("logging", "format"),
    "cache_dir": ("cache", "dir"),
    "api_base_url": ("providers", "api_base_url"),
    "providers_enabled_all": ("providers", "enabled_all"),
    "providers_enabled": ("providers", "enabled"),
    "max_play_sources": ("aggregation", "max_play_sources"),
    "max_concurrent_source_requests": (
        "aggregation",
        "max_concurrent_source_requests",
    ),
    "detail_cache_max_entries": ("aggregation", "detail_cache_max_entries"),
    "probe_timeout_seconds": ("aggregation", "probe_timeout_seconds"),
}


def _sectioned(layer: Mapping[str, Any]) -> dict[str, Any]:
    """Rewrite flat aliases into their sections; unknown keys are ignored."""
    result: dict[str, Any] = {
        key: layer[key] for key in _TOP_LEVEL_KEYS if key in layer
    }
    for section in _SECTIONS:
        block = layer.get(section)
        if isinstance(block, Mapping):
            result[section] = dict(block)
    for alias, (section, key) in _FLAT_ALIASES.items():
        if alias in layer:
            result.setdefault(section, {})[key] = layer[alias]
    return result


def _overlay(target: dict[str, Any], layer: Mapping[str, Any]) -> None:
    """Apply ``layer`` on top of ``target`` in place.

    Nested mappings merge key by key. Any other value (lists included)
    replaces what was there.
    """
    for key, value in layer.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            _overlay(current, value)
        else:
            target[key] = value


def _yaml_layer(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    document = yaml.safe_load(path.read_text(encoding="utf-8"))
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ValueError(
            f"{path}: top level must be a mapping, got {type(document).__name__}"
        )
    return document


def load_config(
    *,
    config_path: Path | None = None,
    dotenv_path: Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """Merge all layers and validate the result into an ``AppConfig``.

    Touches the filesystem only to read; nothing is created. A ``.env`` file
    never overrides variables already present in the process environment.
    """
    if dotenv_path is not None:
        if not dotenv_path.exists():
            raise FileNotFoundError(dotenv_path)
        load_dotenv(dotenv_path, override=False)

    layers: list[Mapping[str, Any]] = [deepcopy(DEFAULT_CONFIG)]
    if config_path is not None:
        layers.append(_yaml_layer(config_path))
    layers.append(EnvOverrides().to_update_dict())
    layers.append(cli_overrides or {})

    merged: dict[str, Any] = {}
    for layer in layers:
        _overlay(merged, _sectioned(layer))
    return AppConfig.model_validate(merged)
