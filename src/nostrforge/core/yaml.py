"""YAML configuration loading and saving.

Uses ``yaml.safe_load`` / ``yaml.safe_dump`` only, so configuration files
can never instantiate arbitrary Python objects. Used by
[YamlConfigProvider][nostrforge.core.config.YamlConfigProvider] to read the
client configuration and to persist repository sets.

Examples:
    ```python
    from nostrforge.core.yaml import load_yaml

    config = load_yaml("~/.config/nostrforge/config.yaml")
    ```
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

import yaml


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load and parse a YAML configuration file.

    Args:
        config_path: Path to the YAML file; ``~`` is expanded.

    Returns:
        Parsed configuration as a nested dictionary. Returns an empty dict
        if the file exists but contains no data.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file contains invalid YAML syntax.
        ValueError: If the top-level value is not a mapping.

    Warning:
        This function does not validate the structure of the returned
        dictionary. Callers pass the result to
        [ClientConfig][nostrforge.core.config.ClientConfig] for schema
        validation.
    """
    path = Path(config_path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")
    return data


def save_yaml(config_path: str | Path, data: dict[str, Any]) -> None:
    """Atomically write *data* as YAML, creating parent directories."""
    path = Path(config_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
        Path(tmp_name).replace(path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
