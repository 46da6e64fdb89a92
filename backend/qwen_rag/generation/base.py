"""Abstract GenerationClient interface.

Every model back-end (Ollama, Bedrock, …) implements this interface so the
indexing and retrieval pipeline stays provider-agnostic.  A client offers
two capabilities: turning text into an embedding vector and turning a prompt
into an answer.
"""
import math
from abc import ABC, abstractmethod
from typing import Any

from qwen_rag.errors import GenerationError

SEARCH_DOCUMENT = "search_document"
SEARCH_QUERY = "search_query"


class GenerationClient(ABC):
    """Abstract base class for embedding + response generation clients.

    All methods are coroutines.  Failures must surface as
    :class:`~qwen_rag.errors.GenerationError`; implementations never retry.
    """

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Model identifier used for logging."""

    @abstractmethod
    async def generate_embedding(
        self, text: str, input_type: str = SEARCH_DOCUMENT
    ) -> list[float]:
        """Generate one embedding vector for *text*.

        Args:
            text: The string to embed.
            input_type: Embedding input type hint.  Use ``"search_document"``
                        when indexing and ``"search_query"`` when querying.
                        Providers without the distinction ignore it.

        Returns:
            A non-empty list of floats.

        Raises:
            GenerationError: On transport failure or malformed response.
        """

    async def generate_embeddings(
        self, texts: list[str], input_type: str = SEARCH_DOCUMENT
    ) -> list[list[float]]:
        """Generate one vector per text, in order.

        The default implementation issues one ``generate_embedding`` call per
        text and awaits each before starting the next.
        """
        vectors: list[list[float]] = []
        for text in texts:
            vectors.append(await self.generate_embedding(text, input_type=input_type))
        return vectors

    @abstractmethod
    async def generate_response(self, prompt: str) -> str:
        """Send *prompt* to the chat model and return its answer text.

        Raises:
            GenerationError: On transport failure or malformed response.
        """

    async def aclose(self) -> None:
        """Release network resources.  No-op by default."""


def parse_vector(raw: Any, provider: str) -> list[float]:
    """Validate a raw JSON embedding and return it as a list of floats.

    Raises:
        GenerationError: If *raw* is not a non-empty list of finite numbers.
    """
    if not isinstance(raw, list) or not raw:
        raise GenerationError("Unexpected embedding response — vector missing or empty", provider)
    vector: list[float] = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise GenerationError(
                f"Unexpected embedding component of type {type(value).__name__}", provider
            )
        if not math.isfinite(value):
            raise GenerationError("Embedding contains a non-finite component", provider)
        vector.append(float(value))
    return vector
