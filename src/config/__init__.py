"""Configuration module -- exports Settings and the YAML loader."""

from src.config.loader import component_configs, load_config
from src.config.settings import Settings

__all__ = ["Settings", "component_configs", "load_config"]
