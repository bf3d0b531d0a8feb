"""Unit tests for Settings and the YAML config loader."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from knowledge_pipeline.config.loader import load_config, settings_from_config
from knowledge_pipeline.config.settings import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "TAGGING_MODE", "UPLOAD_BATCH_SIZE"):
        monkeypatch.delenv(name, raising=False)


def _write_yaml(tmp_path: Path, data: dict) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings(_env_file=None)
        assert s.openai_embedding_model == "text-embedding-3-small"
        assert s.embedding_sub_batch_size == 10
        assert s.upload_batch_size == 100
        assert s.max_retry_count == 5
        assert s.tagging_mode == "background"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("UPLOAD_BATCH_SIZE", "25")
        monkeypatch.setenv("TAGGING_MODE", "inline")
        s = Settings(_env_file=None)
        assert s.upload_batch_size == 25
        assert s.tagging_mode == "inline"

    def test_available_llm_providers(self) -> None:
        s = Settings(_env_file=None, openai_api_key="sk", anthropic_api_key="")
        assert s.get_available_llm_providers() == ["openai"]


class TestLoadConfig:
    def test_yaml_values_kept_when_env_silent(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path, {"vector_store": {"upload_batch_size": 50}})
        config = load_config(path, settings=Settings(_env_file=None))
        assert config["vector_store"]["upload_batch_size"] == 50

    def test_explicit_settings_override_yaml(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path, {"vector_store": {"upload_batch_size": 50}})
        config = load_config(path, settings=Settings(_env_file=None, upload_batch_size=7))
        assert config["vector_store"]["upload_batch_size"] == 7

    def test_missing_keys_filled_from_settings(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path, {"embedding": {"max_chars": 1000}})
        config = load_config(path, settings=Settings(_env_file=None))
        assert config["embedding"]["max_chars"] == 1000
        assert config["embedding"]["sub_batch_size"] == 10
        assert config["pipeline"]["max_retry_count"] == 5

    def test_missing_file_uses_settings(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "nope.yaml"), settings=Settings(_env_file=None))
        assert config["tagging"]["mode"] == "background"
        assert config["llm"]["available_providers"] == []

    def test_settings_from_config_round_trip(self, tmp_path: Path) -> None:
        path = _write_yaml(
            tmp_path,
            {"tagging": {"mode": "inline"}, "pipeline": {"max_retry_count": 2}},
        )
        base = Settings(_env_file=None)
        s = settings_from_config(load_config(path, settings=base), base=base)
        assert s.tagging_mode == "inline"
        assert s.max_retry_count == 2
        assert s.upload_batch_size == 100

    def test_repo_config_file_loads(self) -> None:
        root = Path(__file__).resolve().parents[2]
        config = load_config(str(root / "config" / "config.yaml"), settings=Settings(_env_file=None))
        assert config["vector_store"]["default_collection"] == "KnowledgeFragment"
