"""Deep merge algorithm for configuration layering.

Supports merging config dicts where later values override earlier ones,
with recursive handling for nested dicts. Lists are never merged
element-wise.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep merge two mappings.

    Override values take precedence over base values, with these rules:
    - Nested mappings are recursively merged
    - Lists are replaced entirely (not concatenated)
    - Other values, including None, are replaced

    Neither input is mutated and the result shares no containers with them.

    Args:
        base: The base mapping.
        override: The mapping with overriding values.

    Returns:
        A new dictionary with merged values.
    """
    result: dict[str, Any] = {key: copy.deepcopy(value) for key, value in base.items()}

    for key, override_value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(override_value, Mapping):
            result[key] = deep_merge(base_value, override_value)
        else:
            result[key] = copy.deepcopy(override_value)

    return result


def merge_configs(*configs: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge multiple configs in order (later overrides earlier).

    Args:
        *configs: Variable number of config mappings to merge. None is skipped.

    Returns:
        A single merged config dict.
    """
    result: dict[str, Any] = {}
    for config in configs:
        if config:
            result = deep_merge(result, config)
    return result


def compile_layers(
    configuration: Mapping[str, Any],
    defaults: Mapping[str, Any],
    overlay: Mapping[str, Any],
) -> dict[str, Any]:
    """Build the effective configuration from the three layers.

    Precedence (lowest to highest): defaults, configuration, overlay.
    """
    return deep_merge(defaults, deep_merge(configuration, overlay))


def reload_merge(
    current: Mapping[str, Any],
    loaded: Mapping[str, Any],
    *,
    persist_memory: bool,
    prefer_memory: bool,
) -> dict[str, Any]:
    """Choose the new configuration layer after reading the backing file.

    Args:
        current: The in-memory configuration layer.
        loaded: The mapping just read from disk.
        persist_memory: Keep in-memory keys that are absent on disk.
        prefer_memory: On conflicting keys, memory wins over disk.
            Only meaningful when persist_memory is set.

    Returns:
        The new configuration layer.
    """
    if not persist_memory:
        return deep_merge({}, loaded)
    if prefer_memory:
        return deep_merge(loaded, current)
    return deep_merge(current, loaded)


def stringify_keys(value: Any) -> Any:
    """Recursively convert every mapping key to ``str``.

    YAML and programmatic input can carry int or bool keys; hash paths
    address string keys only.
    """
    if isinstance(value, Mapping):
        return {str(key): stringify_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [stringify_keys(item) for item in value]
    return value
