"""Batch embedding of chunk texts through a GenerationClient.

Output order always matches input order: downstream code pairs texts and
vectors by position.  The batch is fail-fast: the first failed call aborts
the whole batch with no partial result and no retry.
"""
import asyncio
import logging
from typing import Optional, Sequence

from qwen_rag.errors import EmbeddingError
from qwen_rag.generation.base import SEARCH_DOCUMENT, GenerationClient

from .storage import EmbeddingRecord

logger = logging.getLogger(__name__)


class Embedder:
    """Turns a batch of texts into equal-length embedding records.

    Args:
        client:      Generation client used for every embedding call.
        concurrency: Maximum calls in flight.  ``1`` issues calls strictly
                     one after another.
    """

    def __init__(self, client: GenerationClient, concurrency: int = 1) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._client = client
        self._concurrency = concurrency

    async def generate_embeddings(
        self,
        texts: Sequence[str],
        source_paths: Optional[Sequence[Optional[str]]] = None,
    ) -> list[EmbeddingRecord]:
        """Embed each text once and return records in input order.

        Args:
            texts:        Texts to embed.  Duplicates are embedded again.
            source_paths: Optional origin of each text, parallel to *texts*.

        Returns:
            One EmbeddingRecord per text.

        Raises:
            GenerationError: If any embedding call fails.
            EmbeddingError:  If the returned vectors differ in length.
            ValueError:      If *source_paths* is not parallel to *texts*.
        """
        if source_paths is not None and len(source_paths) != len(texts):
            raise ValueError(
                f"Got {len(source_paths)} source paths for {len(texts)} texts"
            )
        if not texts:
            return []

        logger.info(
            "[Embedder] Embedding %d texts (concurrency=%d)", len(texts), self._concurrency,
        )
        if self._concurrency == 1:
            vectors = []
            for i, text in enumerate(texts, start=1):
                logger.debug("[Embedder] Embedding text %d/%d", i, len(texts))
                vectors.append(
                    await self._client.generate_embedding(text, input_type=SEARCH_DOCUMENT)
                )
        else:
            vectors = await self._embed_concurrently(texts)

        dim = len(vectors[0])
        for i, vector in enumerate(vectors):
            if len(vector) != dim:
                raise EmbeddingError(
                    f"Text {i} embedded to {len(vector)} dimensions, expected {dim}",
                    self._client.model_id,
                )

        paths = source_paths if source_paths is not None else [None] * len(texts)
        return [
            EmbeddingRecord(text=text, vector=list(vector), source_path=path)
            for text, vector, path in zip(texts, vectors, paths)
        ]

    async def _embed_concurrently(self, texts: Sequence[str]) -> list[list[float]]:
        """Bounded fan-out; cancels outstanding calls on the first failure."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _one(text: str) -> list[float]:
            async with semaphore:
                return await self._client.generate_embedding(text, input_type=SEARCH_DOCUMENT)

        tasks = [asyncio.ensure_future(_one(text)) for text in texts]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
