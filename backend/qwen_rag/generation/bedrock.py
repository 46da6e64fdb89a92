"""AWS Bedrock generation client (Cohere Embed + Claude).

Embeddings go through ``bedrock-runtime:invoke_model`` with the Cohere Embed
request schema; answers go through the same call with the Anthropic messages
schema.  boto3 is synchronous, so every call runs in a worker thread via
``asyncio.to_thread``.

Cohere request body
-------------------
::

    {
        "texts":       ["text1"],
        "input_type":  "search_document",   # or "search_query"
        "truncate":    "END"
    }

Cohere response body (both flat and nested float formats are handled)
---------------------------------------------------------------------
::

    # Flat format (Cohere Embed v2/v3):
    { "embeddings": [[...]], ... }

    # Nested format (Cohere Embed v4 with explicit type):
    { "embeddings": { "float": [[...]] }, ... }
"""
import asyncio
import json
import logging
from typing import Any, Optional

from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from qwen_rag.errors import GenerationError

from .base import SEARCH_DOCUMENT, GenerationClient, parse_vector

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL_ID = "cohere.embed-english-v3"
DEFAULT_CHAT_MODEL_ID      = "us.anthropic.claude-sonnet-4-5-20250929-v1:0"
DEFAULT_REGION             = "us-east-1"
DEFAULT_MAX_TOKENS         = 2048
DEFAULT_TIMEOUT            = 120.0

# Bedrock's input validation rejects Cohere texts that exceed this limit
# *before* the model processes them, so the Cohere-level ``"truncate": "END"``
# parameter never gets a chance to work.  We must pre-truncate client-side.
_COHERE_BEDROCK_MAX_CHARS = 2048

_PROVIDER = "bedrock"


class BedrockClient(GenerationClient):
    """GenerationClient backed by AWS Bedrock.

    Args:
        embedding_model_id:    Bedrock model ID for the Cohere embedding model.
        chat_model_id:         Bedrock model ID or inference profile for Claude.
        aws_access_key_id:     AWS access key.  ``None`` → default credential chain.
        aws_secret_access_key: AWS secret access key.
        aws_session_token:     Optional temporary-credential session token.
        region_name:           AWS region.  Defaults to ``us-east-1``.
        max_tokens:            Response token ceiling for Claude.
        timeout:               Connect and read timeout in seconds.
    """

    def __init__(
        self,
        embedding_model_id: str = DEFAULT_EMBEDDING_MODEL_ID,
        chat_model_id: str = DEFAULT_CHAT_MODEL_ID,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
        region_name: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._embedding_model_id = embedding_model_id
        self._chat_model_id = chat_model_id
        self._access_key = aws_access_key_id
        self._secret_key = aws_secret_access_key
        self._session_token = aws_session_token
        self._region = region_name or DEFAULT_REGION
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._client: Optional[Any] = None

    # -----------------------------------------------------------------------
    # Properties
    # -----------------------------------------------------------------------

    @property
    def model_id(self) -> str:
        return self._chat_model_id

    @property
    def embedding_model_id(self) -> str:
        return self._embedding_model_id

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _get_client(self) -> Any:
        """Return a cached boto3 bedrock-runtime client."""
        if self._client is None:
            try:
                import boto3  # lazy import, not required when mocked in tests
            except ImportError as exc:
                raise ImportError(
                    "boto3 is required for BedrockClient. "
                    "Install it with: pip install boto3"
                ) from exc

            kwargs: dict = {
                "region_name": self._region,
                "config": BotoConfig(
                    connect_timeout=self._timeout,
                    read_timeout=self._timeout,
                    retries={"max_attempts": 1, "mode": "standard"},
                ),
            }
            if self._access_key and self._secret_key:
                kwargs["aws_access_key_id"]     = self._access_key
                kwargs["aws_secret_access_key"] = self._secret_key
            if self._session_token:
                kwargs["aws_session_token"] = self._session_token

            self._client = boto3.client("bedrock-runtime", **kwargs)

        return self._client

    def _invoke(self, model_id: str, body: dict) -> dict:
        """Call ``invoke_model`` synchronously and decode the JSON body."""
        client = self._get_client()
        try:
            response = client.invoke_model(
                modelId=model_id,
                body=json.dumps(body),
                contentType="application/json",
                accept="application/json",
            )
            return json.loads(response["body"].read())
        except (BotoCoreError, ClientError) as exc:
            raise GenerationError(f"invoke_model({model_id}) failed: {exc}", _PROVIDER) from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise GenerationError(
                f"invoke_model({model_id}) returned an unreadable body: {exc}", _PROVIDER
            ) from exc

    def _embed_sync(self, text: str, input_type: str) -> list[float]:
        if len(text) > _COHERE_BEDROCK_MAX_CHARS:
            logger.warning(
                "[generation/bedrock] Truncating text from %d to %d chars",
                len(text), _COHERE_BEDROCK_MAX_CHARS,
            )
            text = text[:_COHERE_BEDROCK_MAX_CHARS]

        logger.debug(
            "[generation/bedrock] embedding model=%s input_type=%s",
            self._embedding_model_id, input_type,
        )
        data = self._invoke(
            self._embedding_model_id,
            {"texts": [text], "input_type": input_type, "truncate": "END"},
        )

        # Support both flat and nested response formats.
        raw = data.get("embeddings")
        if raw is None:
            raise GenerationError(
                f"Unexpected Bedrock response — 'embeddings' key missing: {list(data.keys())}",
                _PROVIDER,
            )
        if isinstance(raw, dict):
            if "float" not in raw:
                raise GenerationError(
                    f"Unexpected nested embeddings format, keys: {list(raw.keys())}",
                    _PROVIDER,
                )
            raw = raw["float"]

        if not isinstance(raw, list) or len(raw) != 1:
            raise GenerationError(
                f"Provider returned {len(raw) if isinstance(raw, list) else 0} vectors for 1 text",
                _PROVIDER,
            )
        return parse_vector(raw[0], _PROVIDER)

    def _respond_sync(self, prompt: str) -> str:
        logger.debug(
            "[generation/bedrock] chat model=%s prompt_chars=%d",
            self._chat_model_id, len(prompt),
        )
        data = self._invoke(
            self._chat_model_id,
            {
                "anthropic_version": "bedrock-2023-05-31",
                "max_tokens": self._max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        try:
            return data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError(
                f"Unexpected chat response shape: {list(data.keys())}", _PROVIDER
            ) from exc

    # -----------------------------------------------------------------------
    # GenerationClient implementation
    # -----------------------------------------------------------------------

    async def generate_embedding(
        self, text: str, input_type: str = SEARCH_DOCUMENT
    ) -> list[float]:
        return await asyncio.to_thread(self._embed_sync, text, input_type)

    async def generate_response(self, prompt: str) -> str:
        return await asyncio.to_thread(self._respond_sync, prompt)
