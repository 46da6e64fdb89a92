"""Tests for YAML config loading, env overrides and path resolution."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from qwen_rag.config import AppConfig, get_config, load_config, reset_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("QWEN_MODEL", raising=False)
    monkeypatch.delenv("OLLAMA_ENDPOINT", raising=False)
    reset_config()
    yield
    reset_config()


def _settings(directory: Path, text: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "qwen.settings.yaml"
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Defaults and YAML loading
# ---------------------------------------------------------------------------

class TestLoadConfig:
    def test_defaults_without_files(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        cfg = load_config()
        assert isinstance(cfg, AppConfig)
        assert cfg.rag.top_k == 5
        assert cfg.rag.max_keyword_files == 200
        assert cfg.rag.embed_concurrency == 1
        assert cfg.generation.provider == "ollama"
        assert cfg.generation.timeout_seconds == 120.0
        assert cfg.ollama.base_url == "http://localhost:11434"
        assert cfg.ollama.model == "qwen2.5-coder:7b"
        assert cfg.secrets.aws.access_key_id is None

    def test_settings_file_values(self, tmp_path):
        path = _settings(
            tmp_path,
            "rag:\n"
            "  root_path: /srv/docs\n"
            "  top_k: 8\n"
            "generation:\n"
            "  provider: bedrock\n"
            "  timeout_seconds: 30\n"
            "bedrock:\n"
            "  region: eu-west-1\n",
        )
        cfg = load_config(settings_path=path)
        assert cfg.rag.root_path == "/srv/docs"
        assert cfg.rag.top_k == 8
        assert cfg.generation.provider == "bedrock"
        assert cfg.generation.timeout_seconds == 30.0
        assert cfg.bedrock.region == "eu-west-1"

    def test_secrets_sibling_file(self, tmp_path):
        path = _settings(tmp_path, "logging:\n  level: debug\n")
        (tmp_path / "qwen.secrets.yaml").write_text(
            "aws:\n  access_key_id: AKIA\n  secret_access_key: shh\n", encoding="utf-8"
        )
        cfg = load_config(settings_path=path)
        assert cfg.secrets.aws.access_key_id == "AKIA"
        assert cfg.secrets.aws.secret_access_key == "shh"
        assert cfg.logging.level == "debug"

    def test_found_in_config_directory(self, tmp_path, monkeypatch):
        _settings(tmp_path / "config", "rag:\n  top_k: 3\n")
        monkeypatch.chdir(tmp_path)
        assert load_config().rag.top_k == 3

    def test_empty_yaml_file(self, tmp_path):
        cfg = load_config(settings_path=_settings(tmp_path, ""))
        assert cfg.rag.top_k == 5

    def test_unknown_provider_rejected(self, tmp_path):
        path = _settings(tmp_path, "generation:\n  provider: openai\n")
        with pytest.raises(ValidationError):
            load_config(settings_path=path)

    def test_invalid_top_k_rejected(self, tmp_path):
        path = _settings(tmp_path, "rag:\n  top_k: 0\n")
        with pytest.raises(ValidationError):
            load_config(settings_path=path)


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------

class TestEnvOverrides:
    def test_qwen_model_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("QWEN_MODEL", "qwen2.5:14b")
        path = _settings(tmp_path, "ollama:\n  model: from-yaml\n")
        assert load_config(settings_path=path).ollama.model == "qwen2.5:14b"

    @pytest.mark.parametrize(
        "endpoint",
        [
            "http://gpu-box:11434",
            "http://gpu-box:11434/",
            "http://gpu-box:11434/api/chat",
            "http://gpu-box:11434/api/generate",
        ],
    )
    def test_ollama_endpoint_suffix_stripped(self, tmp_path, monkeypatch, endpoint):
        monkeypatch.setenv("OLLAMA_ENDPOINT", endpoint)
        cfg = load_config(settings_path=_settings(tmp_path, ""))
        assert cfg.ollama.base_url == "http://gpu-box:11434"

    def test_yaml_base_url_also_normalised(self, tmp_path):
        path = _settings(tmp_path, "ollama:\n  base_url: http://h:1/api/chat\n")
        assert load_config(settings_path=path).ollama.base_url == "http://h:1"


# ---------------------------------------------------------------------------
# Storage path resolution
# ---------------------------------------------------------------------------

class TestStoragePath:
    def test_relative_to_project_root_for_config_layout(self, tmp_path):
        project = tmp_path / "project"
        path = _settings(project / "config", "rag:\n  storage_path: data/emb.duckdb\n")
        cfg = load_config(settings_path=path)
        assert Path(cfg.rag.storage_path) == project.resolve() / "data" / "emb.duckdb"

    def test_relative_to_settings_directory_otherwise(self, tmp_path):
        path = _settings(tmp_path / "etc", "rag:\n  storage_path: emb.duckdb\n")
        cfg = load_config(settings_path=path)
        assert Path(cfg.rag.storage_path) == (tmp_path / "etc").resolve() / "emb.duckdb"

    def test_absolute_unchanged(self, tmp_path):
        target = tmp_path / "abs" / "emb.duckdb"
        path = _settings(tmp_path, f"rag:\n  storage_path: {target}\n")
        assert Path(load_config(settings_path=path).rag.storage_path) == target


class TestGetConfig:
    def test_cached_until_reset(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        first = get_config()
        assert get_config() is first
        reset_config()
        assert get_config() is not first
