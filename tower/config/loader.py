"""
Configuration loader for the Tower harness.

Loads tower.yaml, validates it against the Pydantic schema, and caches
the result for the lifetime of the process.

Lookup order:
    1. explicit `config_path` argument
    2. TOWER_CONFIG environment variable
    3. config/tower.yaml found by walking up from this file
    4. built-in defaults
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from tower.config.schema import TowerConfig
from tower.exceptions import TowerConfigError

CONFIG_ENV_VAR = "TOWER_CONFIG"

# Module-level cache: resolved path (or "<defaults>") -> TowerConfig
_loaded_configs: dict[str, TowerConfig] = {}


def find_config_file() -> Optional[Path]:
    """Locate config/tower.yaml relative to the project root, if any."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        candidate = parent / "config" / "tower.yaml"
        if candidate.is_file():
            return candidate
    return None


def load_tower_config(config_path: Optional[str | Path] = None) -> TowerConfig:
    """
    Load and validate the harness configuration.

    Args:
        config_path: Optional explicit path to a YAML file.

    Returns:
        Validated TowerConfig instance.

    Raises:
        TowerConfigError: If an explicitly named file is missing or the
            contents fail validation.
    """
    explicit = config_path or os.environ.get(CONFIG_ENV_VAR)
    path = Path(explicit) if explicit else find_config_file()

    cache_key = str(path.resolve()) if path else "<defaults>"
    if cache_key in _loaded_configs:
        return _loaded_configs[cache_key]

    if path is None:
        config = TowerConfig()
        _loaded_configs[cache_key] = config
        return config

    if not path.exists():
        raise TowerConfigError(
            f"Config not found: {path}\n"
            f"Unset {CONFIG_ENV_VAR} or point it at an existing tower.yaml.",
            config_path=str(path),
        )

    try:
        with open(path, "r") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise TowerConfigError(
            f"Config is not valid YAML: {path}", config_path=str(path)
        ) from e

    # An empty file means "all defaults"
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise TowerConfigError(
            f"Config root must be a mapping, got {type(raw).__name__}: {path}",
            config_path=str(path),
        )

    try:
        config = TowerConfig(**raw)
    except ValidationError as e:
        raise TowerConfigError(
            f"Invalid config in {path}:\n{e}",
            config_path=str(path),
            details={"errors": e.errors(include_url=False)},
        ) from e

    _loaded_configs[cache_key] = config
    return config


def clear_cache() -> None:
    """Clear the config cache. Useful for testing."""
    _loaded_configs.clear()
