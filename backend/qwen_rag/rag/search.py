"""Brute-force cosine-similarity ranking over stored embedding records.

Every query scores every record (O(n·d)) with numpy.  Ties keep storage
order, and a zero-magnitude vector scores 0 against anything, so results are
deterministic for a given store.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from qwen_rag.errors import DimensionMismatchError

from .storage import EmbeddingRecord

logger = logging.getLogger(__name__)


@dataclass
class ScoredChunk:
    """A retrieved chunk text with its similarity to the query."""

    text: str
    score: float
    source_path: Optional[str] = None


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors; 0.0 if either is zero."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(expected=va.shape[0], actual=vb.shape[0])
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class SearchEngine:
    """Ranks embedding records by cosine similarity to a query vector."""

    @staticmethod
    def scores(
        query_vector: Sequence[float], records: Sequence[EmbeddingRecord]
    ) -> np.ndarray:
        """Return the similarity of every record to *query_vector*.

        Raises:
            DimensionMismatchError: If any record's vector length differs
                from the query's.
        """
        query = np.asarray(query_vector, dtype=np.float64)
        dim = query.shape[0]
        for record in records:
            if record.dim != dim:
                raise DimensionMismatchError(expected=dim, actual=record.dim)

        matrix = np.asarray([r.vector for r in records], dtype=np.float64).reshape(len(records), dim)
        dots = matrix @ query
        denom = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        return np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)

    @staticmethod
    def rank(
        query_vector: Sequence[float],
        records: Sequence[EmbeddingRecord],
        k: int,
    ) -> list[ScoredChunk]:
        """Return the *k* most similar records, highest similarity first.

        Ties keep their storage order.  Asking for more than are available
        returns everything.
        """
        if not records or k <= 0:
            return []

        scores = SearchEngine.scores(query_vector, records)
        order = np.argsort(-scores, kind="stable")[:k]
        logger.debug(
            "[SearchEngine] Ranked %d records, returning %d", len(records), len(order),
        )
        return [
            ScoredChunk(
                text=records[i].text,
                score=float(scores[i]),
                source_path=records[i].source_path,
            )
            for i in order
        ]

    @staticmethod
    def find_relevant_chunks(
        query_vector: Sequence[float],
        records: Sequence[EmbeddingRecord],
        k: int,
    ) -> list[str]:
        """Return the texts of the *k* records most similar to *query_vector*."""
        return [chunk.text for chunk in SearchEngine.rank(query_vector, records, k)]
