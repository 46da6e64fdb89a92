"""Generation clients: embeddings and answers from an external model.

Provides the :class:`GenerationClient` abstraction plus Ollama (default)
and AWS Bedrock back-ends, and a factory that picks one from config.
"""
import logging

from qwen_rag.config import AppConfig

from .base import SEARCH_DOCUMENT, SEARCH_QUERY, GenerationClient
from .bedrock import BedrockClient
from .ollama import OllamaClient

logger = logging.getLogger(__name__)


def create_client(config: AppConfig) -> GenerationClient:
    """Build the GenerationClient selected by ``generation.provider``."""
    provider = config.generation.provider
    timeout = config.generation.timeout_seconds

    if provider == "bedrock":
        aws = config.secrets.aws
        client: GenerationClient = BedrockClient(
            embedding_model_id=config.bedrock.embedding_model_id,
            chat_model_id=config.bedrock.chat_model_id,
            aws_access_key_id=aws.access_key_id or None,
            aws_secret_access_key=aws.secret_access_key or None,
            aws_session_token=aws.session_token or None,
            region_name=config.bedrock.region,
            max_tokens=config.bedrock.max_tokens,
            timeout=timeout,
        )
    else:
        client = OllamaClient(
            base_url=config.ollama.base_url,
            model=config.ollama.model,
            embedding_model=config.ollama.embedding_model,
            timeout=timeout,
        )

    logger.info(
        "Generation client ready: provider=%s model=%s timeout=%.0fs",
        provider, client.model_id, timeout,
    )
    return client


__all__ = [
    "SEARCH_DOCUMENT",
    "SEARCH_QUERY",
    "GenerationClient",
    "OllamaClient",
    "BedrockClient",
    "create_client",
]
