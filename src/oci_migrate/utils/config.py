"""
Configuration utilities for loading migration defaults from YAML.

Expected layout::

    migration:
      compartment_id: ocid1.compartment.oc1..example
      region: us-phoenix-1
      profile: DEFAULT
      enabled_value: enabled
      max_workers: 8
      wait_timeout: 300
      poll_interval: 10
      timeout: 3600
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..exceptions import ConfigNotFoundError

SECTION = "migration"

KNOWN_KEYS = {
    "compartment_id",
    "region",
    "profile",
    "config_file",
    "enabled_value",
    "max_workers",
    "wait_timeout",
    "poll_interval",
    "timeout",
}


def load_migration_settings(yaml_file_path: str) -> Dict[str, Any]:
    """
    Read the ``migration`` section of a YAML configuration file.

    Args:
        yaml_file_path: Path to the YAML configuration file

    Returns:
        Dict[str, Any]: Settings keyed by the names in ``KNOWN_KEYS``

    Raises:
        FileNotFoundError: If the YAML file cannot be found
        yaml.YAMLError: If the YAML file is malformed
        ConfigNotFoundError: If the ``migration`` section is missing or has unknown keys
    """
    path = Path(yaml_file_path).expanduser()
    try:
        with open(path, "r") as file:
            config = yaml.safe_load(file) or {}
    except FileNotFoundError:
        raise FileNotFoundError(f"YAML file not found at path: {path}")
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Error parsing YAML file: {e}")

    if not isinstance(config, dict) or SECTION not in config:
        raise ConfigNotFoundError(f"'{SECTION}' key not found in configuration {path}")

    section = config[SECTION] or {}
    if not isinstance(section, dict):
        raise ConfigNotFoundError(f"'{SECTION}' in {path} must be a mapping")

    unknown = sorted(set(section) - KNOWN_KEYS)
    if unknown:
        raise ConfigNotFoundError(
            f"Unknown keys in '{SECTION}': {', '.join(unknown)}. "
            f"Allowed keys: {', '.join(sorted(KNOWN_KEYS))}"
        )
    return dict(section)


def merge_settings(file_settings: Dict[str, Any], **overrides: Optional[Any]) -> Dict[str, Any]:
    """Overlay command line values on file settings; ``None`` means not given."""
    merged = dict(file_settings)
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value
    return merged
