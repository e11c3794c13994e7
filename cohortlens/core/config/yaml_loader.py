# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""YAML configuration file loader utilities.

This module loads YAML configuration files (such as the refresh tier
assignment) and deep merges override mappings onto them.

Example:
    >>> from pathlib import Path
    >>> from cohortlens.core.config.yaml_loader import load_yaml
    >>> config = load_yaml(Path("config/refresh_tiers.yaml"))
    >>> sorted(config["tiers"])
    ['heavy', 'light', 'medium']
"""

from pathlib import Path
from typing import Any

import yaml


class YAMLLoadError(Exception):
    """Raised when YAML file cannot be loaded or parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        """Initialize YAMLLoadError.

        Args:
            path: Path to the YAML file that failed to load.
            reason: Description of why the file failed to load.
        """
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load YAML file '{path}': {reason}")


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its root mapping.

    Args:
        path: Path to the YAML file to load.

    Returns:
        Parsed YAML contents. Empty dict if the file is empty.

    Raises:
        YAMLLoadError: If the file is missing, unreadable, not valid YAML,
            or its root is not a mapping.
    """
    if not path.is_file():
        reason = "Path is not a file" if path.exists() else "File does not exist"
        raise YAMLLoadError(path, reason)

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise YAMLLoadError(path, f"Cannot read file: {e}") from e

    try:
        parsed = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise YAMLLoadError(path, f"Invalid YAML syntax: {e}") from e

    if parsed is None:
        return {}

    if not isinstance(parsed, dict):
        raise YAMLLoadError(
            path, f"YAML root must be a mapping, got {type(parsed).__name__}"
        )

    return parsed


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence.

    Nested dictionaries are merged recursively; any other override value
    replaces the base value. Neither input is modified.

    Args:
        base: The base dictionary.
        override: The dictionary whose values take precedence.

    Returns:
        A new merged dictionary.

    Example:
        >>> deep_merge({"tiers": {"light": {"ttl_minutes": 20}}},
        ...            {"tiers": {"light": {"ttl_minutes": 30}}})
        {'tiers': {'light': {'ttl_minutes': 30}}}
    """
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged
