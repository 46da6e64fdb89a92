"""Ollama generation client.

Talks to a local (or remote) Ollama server over its HTTP API using
``httpx.AsyncClient``.

Embedding request / response
----------------------------
::

    POST /api/embeddings
    { "model": "qwen2.5-coder:7b", "prompt": "text" }

    { "embedding": [0.12, -0.04, ...] }

Chat request / response
-----------------------
::

    POST /api/chat
    {
        "model":    "qwen2.5-coder:7b",
        "messages": [{"role": "user", "content": "..."}],
        "stream":   false
    }

    { "message": { "role": "assistant", "content": "..." }, ... }
"""
import logging
from typing import Optional

import httpx

from qwen_rag.errors import GenerationError

from .base import SEARCH_DOCUMENT, GenerationClient, parse_vector

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL    = "qwen2.5-coder:7b"
DEFAULT_TIMEOUT  = 120.0

_PROVIDER = "ollama"


class OllamaClient(GenerationClient):
    """GenerationClient backed by the Ollama HTTP API.

    Args:
        base_url:        Server URL, e.g. ``http://localhost:11434``.
        model:           Chat model name.
        embedding_model: Model used for embeddings.  ``None`` → ``model``.
        timeout:         Per-request timeout in seconds.
        transport:       Optional httpx transport (tests inject
                         ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        embedding_model: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._embedding_model = embedding_model or model
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # -----------------------------------------------------------------------
    # Properties
    # -----------------------------------------------------------------------

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def embedding_model(self) -> str:
        return self._embedding_model

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        """Return a cached ``httpx.AsyncClient``."""
        if self._client is None:
            kwargs: dict = {
                "base_url": self._base_url,
                "timeout": httpx.Timeout(self._timeout),
            }
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    async def _post(self, path: str, payload: dict) -> dict:
        """POST *payload* as JSON and return the decoded JSON object."""
        client = self._get_client()
        try:
            response = await client.post(path, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise GenerationError(
                f"Request to {path} timed out after {self._timeout}s", _PROVIDER
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise GenerationError(
                f"{path} returned HTTP {exc.response.status_code}: "
                f"{exc.response.text[:200]}",
                _PROVIDER,
            ) from exc
        except httpx.HTTPError as exc:
            raise GenerationError(f"Request to {path} failed: {exc}", _PROVIDER) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise GenerationError(f"{path} returned invalid JSON", _PROVIDER) from exc
        if not isinstance(data, dict):
            raise GenerationError(
                f"{path} returned {type(data).__name__}, expected an object", _PROVIDER
            )
        return data

    # -----------------------------------------------------------------------
    # GenerationClient implementation
    # -----------------------------------------------------------------------

    async def generate_embedding(
        self, text: str, input_type: str = SEARCH_DOCUMENT
    ) -> list[float]:
        logger.debug(
            "[generation/ollama] embedding model=%s chars=%d input_type=%s",
            self._embedding_model, len(text), input_type,
        )
        data = await self._post(
            "/api/embeddings",
            {"model": self._embedding_model, "prompt": text},
        )
        return parse_vector(data.get("embedding"), _PROVIDER)

    async def generate_response(self, prompt: str) -> str:
        logger.debug(
            "[generation/ollama] chat model=%s prompt_chars=%d",
            self._model, len(prompt),
        )
        data = await self._post(
            "/api/chat",
            {
                "model": self._model,
                "messages": [{"role": "user", "content": prompt}],
                "stream": False,
            },
        )
        message = data.get("message")
        if not isinstance(message, dict) or not isinstance(message.get("content"), str):
            raise GenerationError(
                f"Unexpected chat response — 'message.content' missing: {list(data.keys())}",
                _PROVIDER,
            )
        return message["content"]

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

