"""
Settings files for forrest apps.

Loads YAML settings files and merges them into manifest settings.
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


# Environment variable pointing to the default settings file
SETTINGS_ENV_VAR = "FORREST_SETTINGS"


class ConfigError(Exception):
    """Settings file could not be loaded."""
    pass


def get_settings_path() -> Optional[Path]:
    """Get the settings file path from FORREST_SETTINGS, if set."""
    value = os.environ.get(SETTINGS_ENV_VAR)
    if not value:
        return None
    return Path(value).expanduser()


def load_settings(path: Path) -> Dict[str, Any]:
    """
    Load a settings tree from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Settings mapping ({} for an empty file)

    Raises:
        ConfigError: If the file is missing, not valid YAML, or not a mapping
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Settings file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Settings file {path} must contain a mapping, got {type(data).__name__}"
        )
    return data


def merge_settings(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Deep-merge two settings trees into a new dict.

    Nested mappings are merged key by key; any other override value
    replaces the base value. Neither input is modified.
    """
    merged: Dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_settings(current, value)
        else:
            merged[key] = value
    return merged
