"""RagService — indexing and question answering over a local file tree.

Ties the pipeline together:

    build:  FileScanner → Embedder → EmbeddingStorage (append, or replace_all on rebuild)
    query:  client.generate_embedding → EmbeddingStorage.get_all_embeddings
            → SearchEngine → context block → client.generate_response

The service holds no lock; operations on one instance must not overlap.
"""
import enum
import logging
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from qwen_rag.generation.base import SEARCH_QUERY, GenerationClient

from .embedder import Embedder
from .scanner import Chunk, FileScanner
from .search import ScoredChunk, SearchEngine
from .storage import EmbeddingRecord, EmbeddingStorage

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
MAX_KEYWORD_FILES = 200


class RagState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INDEXED = "indexed"


def build_prompt(context: str, question: str) -> str:
    """Frame retrieved context and the user's question for the chat model."""
    return f"Context:\n{context}\n\nQuestion: {question}\nAnswer:"


def select_paths_for_keywords(
    paths: Sequence[Path],
    keywords: Iterable[str],
    limit: int = MAX_KEYWORD_FILES,
) -> list[Path]:
    """Pick the files to index for a keyword-scoped build.

    A path is kept when any keyword occurs in it, case-insensitively.  If no
    path matches (or no keyword is given) every path is kept.  The result is
    then cut to the first *limit* paths in scan order.
    """
    lowered = [k.lower() for k in keywords]
    selected = list(paths)
    if lowered:
        matched = [p for p in selected if any(k in str(p).lower() for k in lowered)]
        if matched:
            selected = matched
        else:
            logger.info(
                "[RagService] No path matched keywords %s; using all %d files",
                lowered, len(selected),
            )
    if len(selected) > limit:
        logger.info("[RagService] Truncating %d files to %d", len(selected), limit)
        selected = selected[:limit]
    return selected


class RagService:
    """Builds the embedding index for a root directory and answers questions.

    Args:
        root_path:         Directory to scan.
        storage_path:      DuckDB file holding the embeddings.
        client:            Generation client for embeddings and answers.
        top_k:             Chunks placed in the context for each query.
        max_keyword_files: Ceiling on files embedded by a keyword build.
        embed_concurrency: Embedding calls allowed in flight at once.

    Raises:
        StorageError: If the embedding store cannot be opened.
    """

    def __init__(
        self,
        root_path: Union[str, Path],
        storage_path: Union[str, Path],
        client: GenerationClient,
        top_k: int = DEFAULT_TOP_K,
        max_keyword_files: int = MAX_KEYWORD_FILES,
        embed_concurrency: int = 1,
    ) -> None:
        self._scanner = FileScanner(root_path)
        self._storage = EmbeddingStorage(storage_path)
        self._embedder = Embedder(client, concurrency=embed_concurrency)
        self._client = client
        self._top_k = top_k
        self._max_keyword_files = max_keyword_files
        self._state = RagState.UNINITIALIZED

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> RagState:
        return self._state

    @property
    def root_path(self) -> Path:
        return self._scanner.root

    @property
    def storage(self) -> EmbeddingStorage:
        return self._storage

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    async def build_index(self) -> int:
        """Scan the whole root, embed every chunk and append the records.

        Returns:
            Number of records stored.
        """
        logger.info("[RagService] build_index: root=%s", self.root_path)
        chunks = self._scanner.scan_files()
        return await self._index_chunks(chunks)

    async def build_index_for_keywords(self, keywords: Sequence[str]) -> int:
        """Index only files whose path mentions one of *keywords*.

        Falls back to every file when nothing matches, and never embeds
        more than ``max_keyword_files`` files.

        Returns:
            Number of records stored.
        """
        logger.info(
            "[RagService] build_index_for_keywords: root=%s keywords=%s",
            self.root_path, list(keywords),
        )
        files = self._scanner.collect_files()
        selected = select_paths_for_keywords(files, keywords, self._max_keyword_files)
        chunks = self._scanner.scan_paths(selected)
        return await self._index_chunks(chunks)

    async def rebuild_index(self) -> int:
        """Scan and embed the whole root, then swap it in for the stored records.

        A scan or embedding failure leaves the existing records in place.

        Returns:
            Number of records stored.
        """
        logger.info("[RagService] rebuild_index: root=%s", self.root_path)
        chunks = self._scanner.scan_files()
        records = await self._embed_chunks(chunks)
        stored = self._storage.replace_all(records)
        self._state = RagState.INDEXED
        logger.info("[RagService] Rebuilt index with %d records", stored)
        return stored

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def search(self, question: str, k: Optional[int] = None) -> list[ScoredChunk]:
        """Return the chunks most similar to *question* with their scores."""
        query_vector = await self._client.generate_embedding(question, input_type=SEARCH_QUERY)
        records = self._storage.get_all_embeddings()
        return SearchEngine.rank(query_vector, records, self._top_k if k is None else k)

    async def query(self, question: str) -> str:
        """Answer *question* using the top chunks as context.

        An empty store gives an empty context; the question is still sent.

        Returns:
            The chat model's answer, verbatim.
        """
        query_vector = await self._client.generate_embedding(question, input_type=SEARCH_QUERY)
        records = self._storage.get_all_embeddings()
        relevant = SearchEngine.find_relevant_chunks(query_vector, records, self._top_k)
        logger.info(
            "[RagService] query: %d records searched, %d chunks in context",
            len(records), len(relevant),
        )
        context = "\n".join(relevant)
        return await self._client.generate_response(build_prompt(context, question))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._storage.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _embed_chunks(self, chunks: list[Chunk]) -> list[EmbeddingRecord]:
        texts = [c.text for c in chunks]
        sources = [str(c.source_path) for c in chunks]
        return await self._embedder.generate_embeddings(texts, source_paths=sources)

    async def _index_chunks(self, chunks: list[Chunk]) -> int:
        records = await self._embed_chunks(chunks)
        stored = self._storage.insert_embeddings(records)
        self._state = RagState.INDEXED
        logger.info(
            "[RagService] Indexed %d chunks (store now holds %d records)",
            stored, self._storage.count(),
        )
        return stored
