# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""YAML configuration file loader utilities.

The tutor configuration ships as one base YAML file. Deployments may layer
a second file on top of it (for example a different persona voice or
extra credit rules); the two are deep merged with the override winning.

Example:
    >>> from pathlib import Path
    >>> from src.core.config.yaml_loader import load_yaml_with_override
    >>> raw = load_yaml_with_override(
    ...     Path("config/tutor.yaml"), Path("config/tutor.local.yaml")
    ... )
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
    """Load a single YAML file and return its contents as a dictionary.

    Args:
        path: Path to the YAML file to load.

    Returns:
        Dictionary containing the parsed YAML contents.
        Empty dict if file is empty.

    Raises:
        YAMLLoadError: If the file doesn't exist, cannot be read,
            or contains invalid YAML.
    """
    if not path.is_file():
        reason = "Path is not a file" if path.exists() else "File does not exist"
        raise YAMLLoadError(path, reason)

    try:
        parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise YAMLLoadError(path, f"Cannot read file: {e}") from e
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

    Nested dictionaries are merged recursively; lists and scalars from the
    override replace the base value. Neither input is modified.

    Example:
        >>> deep_merge({"a": 1, "b": {"c": 2, "d": 3}}, {"b": {"c": 10}})
        {"a": 1, "b": {"c": 10, "d": 3}}
    """
    result: dict[str, Any] = base.copy()

    for key, override_value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(override_value, dict):
            result[key] = deep_merge(base_value, override_value)
        else:
            result[key] = override_value

    return result


def load_yaml_with_override(base: Path, override: Path | None = None) -> dict[str, Any]:
    """Load a base YAML file and deep merge an optional override file on top.

    Args:
        base: Path to the base configuration.
        override: Optional path whose values take precedence.

    Returns:
        The merged configuration mapping.

    Raises:
        YAMLLoadError: If either file cannot be loaded.
    """
    data = load_yaml(base)
    if override is None:
        return data
    return deep_merge(data, load_yaml(override))
