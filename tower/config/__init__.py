"""Configuration schema and loader for the Tower harness."""

from tower.config.loader import clear_cache, load_tower_config
from tower.config.schema import DEFAULT_CONFIG, TowerConfig

__all__ = ["DEFAULT_CONFIG", "TowerConfig", "clear_cache", "load_tower_config"]
