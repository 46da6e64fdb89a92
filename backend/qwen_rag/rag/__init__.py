"""RAG (Retrieval-Augmented Generation) module for local document context.

Provides whole-file chunking of a source tree, order-preserving batch
embedding, DuckDB-backed vector storage and brute-force cosine retrieval,
orchestrated by :class:`RagService`.
"""
from .embedder import Embedder
from .scanner import SUPPORTED_EXTENSIONS, Chunk, FileScanner, is_supported_file
from .search import ScoredChunk, SearchEngine, cosine_similarity
from .service import RagService, RagState, build_prompt, select_paths_for_keywords
from .storage import EmbeddingRecord, EmbeddingStorage

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "Chunk",
    "FileScanner",
    "is_supported_file",
    "Embedder",
    "EmbeddingRecord",
    "EmbeddingStorage",
    "ScoredChunk",
    "SearchEngine",
    "cosine_similarity",
    "RagService",
    "RagState",
    "build_prompt",
    "select_paths_for_keywords",
]
