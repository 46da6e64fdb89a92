"""qwen-rag application configuration.

Loads settings from two YAML files:
  * qwen.settings.yaml  — non-secret configuration
  * qwen.secrets.yaml   — secrets (never committed)

Both are looked up in the working directory first, then in ``./config``.
A couple of environment variables override the YAML values:
  * QWEN_MODEL       — Ollama chat model
  * OLLAMA_ENDPOINT  — Ollama server URL (``/api/chat`` suffix accepted)
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = "qwen.settings.yaml"
SECRETS_FILE  = "qwen.secrets.yaml"

_SEARCH_DIRS = (Path("."), Path("config"))

# Suffixes accepted on OLLAMA_ENDPOINT; the client appends its own paths.
_OLLAMA_API_SUFFIXES = ("/api/chat", "/api/generate", "/api/embeddings")


def _load_yaml(path: Optional[Path]) -> Dict[str, Any]:
    if path is None or not path.exists():
        logger.debug("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _find_file(name: str) -> Optional[Path]:
    for directory in _SEARCH_DIRS:
        candidate = directory / name
        if candidate.exists():
            return candidate
    return None


def _strip_ollama_suffix(url: str) -> str:
    url = url.rstrip("/")
    for suffix in _OLLAMA_API_SUFFIXES:
        if url.endswith(suffix):
            return url[: -len(suffix)]
    return url


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class AwsSecrets(BaseModel):
    access_key_id:     Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token:     Optional[str] = None


class Secrets(BaseModel):
    aws: AwsSecrets = Field(default_factory=AwsSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class LoggingSettings(BaseModel):
    level: str = "info"


class RagSettings(BaseModel):
    """Indexing and retrieval parameters."""
    root_path:         str  = "."
    storage_path:      str  = "embeddings.duckdb"
    top_k:             int  = Field(default=5, ge=1)
    max_keyword_files: int  = Field(default=200, ge=1)
    embed_concurrency: int  = Field(default=1, ge=1)
    index_on_startup:  bool = False


class GenerationSettings(BaseModel):
    provider:        Literal["ollama", "bedrock"] = "ollama"
    timeout_seconds: float                        = Field(default=120.0, gt=0)


class OllamaSettings(BaseModel):
    base_url:        str           = "http://localhost:11434"
    model:           str           = "qwen2.5-coder:7b"
    embedding_model: Optional[str] = None

    @field_validator("base_url")
    @classmethod
    def _normalise_base_url(cls, value: str) -> str:
        return _strip_ollama_suffix(value)


class BedrockSettings(BaseModel):
    region:             str = "us-east-1"
    embedding_model_id: str = "cohere.embed-english-v3"
    chat_model_id:      str = "us.anthropic.claude-sonnet-4-5-20250929-v1:0"
    max_tokens:         int = 2048


class CacheSettings(BaseModel):
    enabled: bool = True
    path:    str  = "~/.config/qwen_rag/cache.json"


class AppConfig(BaseModel):
    server:     ServerSettings     = Field(default_factory=ServerSettings)
    logging:    LoggingSettings    = Field(default_factory=LoggingSettings)
    rag:        RagSettings        = Field(default_factory=RagSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    ollama:     OllamaSettings     = Field(default_factory=OllamaSettings)
    bedrock:    BedrockSettings    = Field(default_factory=BedrockSettings)
    cache:      CacheSettings      = Field(default_factory=CacheSettings)
    secrets:    Secrets            = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def _apply_env_overrides(data: Dict[str, Any]) -> None:
    """Overlay QWEN_MODEL / OLLAMA_ENDPOINT onto the raw settings dict."""
    ollama = data.setdefault("ollama", {}) or {}
    data["ollama"] = ollama

    model = os.environ.get("QWEN_MODEL")
    if model:
        ollama["model"] = model
        logger.debug("QWEN_MODEL override: %s", model)

    endpoint = os.environ.get("OLLAMA_ENDPOINT")
    if endpoint:
        ollama["base_url"] = endpoint
        logger.debug("OLLAMA_ENDPOINT override: %s", endpoint)


def _resolve_storage_path(config: AppConfig, settings_path: Optional[Path]) -> None:
    """Resolve a relative ``rag.storage_path`` against the settings file."""
    storage = Path(config.rag.storage_path).expanduser()
    if storage.is_absolute() or settings_path is None:
        config.rag.storage_path = str(storage)
        return

    base = settings_path.resolve().parent
    # ./config/qwen.settings.yaml layout: paths are relative to the project root
    if base.name == "config":
        base = base.parent
    config.rag.storage_path = str(base / storage)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppConfig:
    """Load and merge settings + secrets into a single *AppConfig* object.

    Args:
        settings_path: Explicit settings file.  ``None`` searches the
                       working directory and ``./config``.
        secrets_path:  Explicit secrets file.  ``None`` looks next to the
                       settings file, then in the default locations.

    Returns:
        The validated configuration.
    """
    settings_path = Path(settings_path) if settings_path else _find_file(SETTINGS_FILE)
    if secrets_path is None and settings_path is not None:
        sibling = settings_path.parent / SECRETS_FILE
        secrets_path = sibling if sibling.exists() else None
    if secrets_path is None:
        secrets_path = _find_file(SECRETS_FILE)

    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(Path(secrets_path) if secrets_path else None)

    # Merge: secrets live under the "secrets" key in AppConfig
    settings_data["secrets"] = secrets_data
    _apply_env_overrides(settings_data)

    config = AppConfig(**settings_data)
    _resolve_storage_path(config, settings_path)

    logger.info(
        "Settings loaded (provider=%s, root=%s, storage=%s)",
        config.generation.provider,
        config.rag.root_path,
        config.rag.storage_path,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (used by tests)."""
    global _config
    _config = None
