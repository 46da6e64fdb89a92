"""DuckDB-backed durable storage for embedding records.

Each record pairs a chunk's text with its embedding vector (and, when known,
the file it came from).  Vectors are stored as ``DOUBLE[]`` so they round-trip
exactly.  Reads return every record in insertion order; there is no partial
or streamed read.

Database Schema:
    embeddings table:
        - id: Auto-incrementing primary key (insertion order)
        - source_path: Originating file path, nullable
        - text: Chunk text
        - vector: Embedding vector

Every vector in one store has the same length.  The first successful insert
fixes the dimension; later inserts with a different length are rejected
before anything is written.

Thread Safety:
    The DuckDB connection is NOT thread-safe and the store holds no lock.
    One ``EmbeddingStorage`` owns its database file exclusively; callers
    sharing a path must serialize themselves.

Usage:
    with EmbeddingStorage("embeddings.duckdb") as storage:
        storage.insert_embeddings(records)
        everything = storage.get_all_embeddings()
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Union

import duckdb

from qwen_rag.errors import DimensionMismatchError, StorageError

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


@dataclass
class EmbeddingRecord:
    """A chunk's text and its embedding vector."""

    text: str
    vector: list[float] = field(default_factory=list)
    source_path: Optional[str] = None

    @property
    def dim(self) -> int:
        return len(self.vector)


class EmbeddingStorage:
    """Durable, append-only store of :class:`EmbeddingRecord` rows.

    Args:
        db_path: DuckDB file to open or create.  ``":memory:"`` keeps the
                 store in process memory.

    Raises:
        StorageError: If the file cannot be created or is not a valid store.
    """

    def __init__(self, db_path: Union[str, Path]) -> None:
        self._db_path = str(db_path)
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        try:
            if self._db_path != MEMORY_DB:
                Path(self._db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self._connection = duckdb.connect(self._db_path)
            self._initialize_db()
        except (OSError, duckdb.Error) as exc:
            self.close()
            raise StorageError(f"Cannot open embedding store {self._db_path}: {exc}") from exc
        logger.info("[EmbeddingStorage] Opened %s (records=%d)", self._db_path, self.count())

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def dimension(self) -> Optional[int]:
        """Vector length fixed by the stored records, or None when empty."""
        row = self._execute("SELECT len(vector) FROM embeddings LIMIT 1").fetchone()
        return int(row[0]) if row else None

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def insert_embeddings(self, records: Sequence[EmbeddingRecord]) -> int:
        """Append *records* to the store in a single transaction.

        Existing records are never checked or replaced, so indexing the
        same file twice stores it twice.

        Returns:
            Number of records written.

        Raises:
            DimensionMismatchError: If the vectors disagree in length with
                each other or with the store.
            StorageError: If the write fails (nothing is committed).
        """
        if not records:
            return 0
        self._check_dimensions(records)
        self._write(records)
        logger.info("[EmbeddingStorage] Inserted %d records", len(records))
        return len(records)

    def replace_embeddings(self, records: Sequence[EmbeddingRecord]) -> int:
        """Upsert by source path: drop stored records for every source path
        present in *records*, then insert *records*, atomically.

        Records without a source path are simply appended.

        Returns:
            Number of records written.
        """
        if not records:
            return 0
        self._check_dimensions(records, replacing=True)
        removed = self._write(records, replace="sources")
        logger.info(
            "[EmbeddingStorage] Replaced %d records with %d", removed, len(records),
        )
        return len(records)

    def replace_all(self, records: Sequence[EmbeddingRecord]) -> int:
        """Swap the whole store for *records* in one transaction.

        The new records may have a different dimension from the old ones.
        An empty *records* empties the store.

        Returns:
            Number of records written.
        """
        if records:
            dim = records[0].dim
            if dim == 0:
                raise DimensionMismatchError(expected=1, actual=0)
            for record in records[1:]:
                if record.dim != dim:
                    raise DimensionMismatchError(expected=dim, actual=record.dim)
        removed = self._write(records, replace="all")
        logger.info(
            "[EmbeddingStorage] Replaced all %d records with %d", removed, len(records),
        )
        return len(records)

    def clear(self) -> int:
        """Delete every record.  Returns the number removed."""
        removed = self.count()
        self._execute("DELETE FROM embeddings")
        logger.info("[EmbeddingStorage] Cleared %d records", removed)
        return removed

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get_all_embeddings(self) -> list[EmbeddingRecord]:
        """Return every stored record in insertion order."""
        rows = self._execute(
            "SELECT text, vector, source_path FROM embeddings ORDER BY id"
        ).fetchall()
        return [
            EmbeddingRecord(text=row[0], vector=list(row[1]), source_path=row[2])
            for row in rows
        ]

    def count(self) -> int:
        row = self._execute("SELECT count(*) FROM embeddings").fetchone()
        return int(row[0])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def __enter__(self) -> "EmbeddingStorage":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _initialize_db(self) -> None:
        """Create the sequence and table if they don't exist (idempotent)."""
        conn = self._connection
        conn.execute("CREATE SEQUENCE IF NOT EXISTS embeddings_seq START 1")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS embeddings (
                id BIGINT DEFAULT nextval('embeddings_seq') PRIMARY KEY,
                source_path VARCHAR,
                text VARCHAR NOT NULL,
                vector DOUBLE[] NOT NULL
            )
        """)

    def _execute(self, sql: str, params: Optional[list] = None) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            raise StorageError(f"Embedding store {self._db_path} is closed")
        try:
            if params is None:
                return self._connection.execute(sql)
            return self._connection.execute(sql, params)
        except duckdb.Error as exc:
            raise StorageError(f"Embedding store query failed: {exc}") from exc

    def _check_dimensions(
        self, records: Sequence[EmbeddingRecord], replacing: bool = False
    ) -> None:
        dim = records[0].dim
        if dim == 0:
            raise DimensionMismatchError(expected=self.dimension or 1, actual=0)
        for record in records[1:]:
            if record.dim != dim:
                raise DimensionMismatchError(expected=dim, actual=record.dim)

        stored = self.dimension
        if stored is None or stored == dim:
            return
        sources = {r.source_path for r in records if r.source_path is not None}
        if replacing and sources:
            # A replacement covering every stored row may change the dimension.
            row = self._execute(
                "SELECT count(*) FROM embeddings WHERE source_path IS NULL "
                "OR NOT list_contains(?, source_path)",
                [sorted(sources)],
            ).fetchone()
            if row[0] == 0:
                return
        raise DimensionMismatchError(expected=stored, actual=dim)

    @staticmethod
    def _rows(records: Sequence[EmbeddingRecord]) -> list[list]:
        try:
            return [
                [r.source_path, r.text, [float(v) for v in r.vector]]
                for r in records
            ]
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Embedding vector is not numeric: {exc}") from exc

    def _write(self, records: Sequence[EmbeddingRecord], replace: Optional[str] = None) -> int:
        """Insert *records* atomically, first deleting what *replace* names.

        Args:
            records: Records to insert.
            replace: ``None`` appends, ``"sources"`` deletes stored records
                     sharing a source path with *records*, ``"all"`` deletes
                     every stored record.

        Returns:
            Number of rows deleted.
        """
        if self._connection is None:
            raise StorageError(f"Embedding store {self._db_path} is closed")
        rows = self._rows(records)
        conn = self._connection
        removed = 0
        try:
            conn.begin()
            if replace == "all":
                removed = conn.execute("SELECT count(*) FROM embeddings").fetchone()[0]
                conn.execute("DELETE FROM embeddings")
            elif replace == "sources":
                sources = sorted({r.source_path for r in records if r.source_path is not None})
                if sources:
                    removed = conn.execute(
                        "SELECT count(*) FROM embeddings WHERE list_contains(?, source_path)",
                        [sources],
                    ).fetchone()[0]
                    conn.execute(
                        "DELETE FROM embeddings WHERE list_contains(?, source_path)",
                        [sources],
                    )
            if rows:
                conn.executemany(
                    "INSERT INTO embeddings (source_path, text, vector) VALUES (?, ?, ?)",
                    rows,
                )
            conn.commit()
        except duckdb.Error as exc:
            try:
                conn.rollback()
            except duckdb.Error:
                logger.debug("[EmbeddingStorage] Rollback after failed write also failed")
            raise StorageError(f"Failed to write embeddings: {exc}") from exc
        return int(removed)
