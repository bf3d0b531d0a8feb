"""Configuration module -- exports Settings and the YAML loader."""

from knowledge_pipeline.config.loader import load_config, settings_from_config
from knowledge_pipeline.config.settings import Settings

__all__ = ["Settings", "load_config", "settings_from_config"]
