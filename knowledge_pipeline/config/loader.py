"""YAML configuration loader with environment variable overrides.

Layers, later overriding earlier:

  1. config/config.yaml  -- static defaults checked into the repo
  2. .env file           -- local developer overrides (not committed)
  3. Environment vars    -- set at deploy time

``load_config`` reads the YAML file, then deep-merges values from
:class:`Settings` on top, and ``settings_from_config`` turns the merged
tree back into a ``Settings`` instance for ``main.build_components``.
"""

from pathlib import Path
from typing import Any

import yaml

from knowledge_pipeline.config.settings import Settings

# YAML section -> Settings fields that live under it.
_SECTIONS: dict[str, dict[str, str]] = {
    "embedding": {
        "model": "openai_embedding_model",
        "max_chars": "embedding_max_chars",
        "sub_batch_size": "embedding_sub_batch_size",
        "pacing_delay": "embedding_pacing_delay",
    },
    "tagging": {
        "enabled": "tagging_enabled",
        "mode": "tagging_mode",
        "model": "openai_text_model",
        "provider": "llm_provider",
    },
    "vector_store": {
        "backend": "vector_store_backend",
        "url": "weaviate_url",
        "default_collection": "default_collection",
        "upload_batch_size": "upload_batch_size",
        "chromadb_persist_dir": "chromadb_persist_dir",
    },
    "pipeline": {
        "max_retry_count": "max_retry_count",
        "concurrency": "orchestrator_concurrency",
        "record_db_path": "record_db_path",
        "blob_storage_dir": "blob_storage_dir",
    },
    "logging": {
        "level": "log_level",
    },
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge environment-based Settings on top.

    Only settings explicitly provided through the environment or ``.env``
    override YAML values; untouched defaults leave the YAML in place.

    Args:
        path: Path to the YAML configuration file.
        settings: Optional pre-built Settings (tests pass one in).

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    if settings is None:
        settings = Settings()

    explicit = settings.model_fields_set
    env_overrides: dict[str, Any] = {}
    for section, fields in _SECTIONS.items():
        for key, field_name in fields.items():
            if field_name in explicit or key not in yaml_config.get(section, {}):
                env_overrides.setdefault(section, {})[key] = getattr(settings, field_name)

    env_overrides["llm"] = {"available_providers": settings.get_available_llm_providers()}

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def settings_from_config(config: dict, base: Settings | None = None) -> Settings:
    """Project a merged config tree back onto a Settings instance."""
    if base is None:
        base = Settings()
    update: dict[str, Any] = {}
    for section, fields in _SECTIONS.items():
        values = config.get(section) or {}
        for key, field_name in fields.items():
            if key in values:
                update[field_name] = values[key]
    return base.model_copy(update=update)


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
