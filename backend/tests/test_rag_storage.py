"""Tests for the DuckDB embedding store.

Covers insert/read round-trip, append semantics, dimension guard,
replace/clear, persistence across handles and corrupt-file handling.
"""
import pytest

from qwen_rag.errors import DimensionMismatchError, StorageError
from qwen_rag.rag.storage import EmbeddingRecord, EmbeddingStorage


def _rec(text: str, vector=None, source: str = None) -> EmbeddingRecord:
    return EmbeddingRecord(text=text, vector=vector or [0.1, 0.2, 0.3], source_path=source)


@pytest.fixture
def storage(tmp_path):
    store = EmbeddingStorage(tmp_path / "embeddings.duckdb")
    yield store
    store.close()


# ---------------------------------------------------------------------------
# Basic operations
# ---------------------------------------------------------------------------

class TestEmbeddingStorageBasic:
    def test_new_store_is_empty(self, storage):
        assert storage.count() == 0
        assert storage.dimension is None
        assert storage.get_all_embeddings() == []

    def test_insert_and_read_back_exactly(self, storage):
        records = [
            _rec("fn main(){}", [0.1, -2.5, 1e-12], "a.rs"),
            _rec("# Title", [3.141592653589793, 0.0, -0.333333333333333], "c.md"),
        ]
        assert storage.insert_embeddings(records) == 2
        assert storage.get_all_embeddings() == records
        assert storage.dimension == 3

    def test_insert_empty_is_noop(self, storage):
        assert storage.insert_embeddings([]) == 0
        assert storage.count() == 0

    def test_reads_preserve_insertion_order(self, storage):
        storage.insert_embeddings([_rec("one"), _rec("two")])
        storage.insert_embeddings([_rec("three")])
        assert [r.text for r in storage.get_all_embeddings()] == ["one", "two", "three"]

    def test_repeated_inserts_accumulate(self, storage):
        rec = _rec("same", source="a.rs")
        storage.insert_embeddings([rec])
        storage.insert_embeddings([rec])
        assert storage.count() == 2

    def test_source_path_is_optional(self, storage):
        storage.insert_embeddings([_rec("no source")])
        assert storage.get_all_embeddings()[0].source_path is None

    def test_memory_store(self):
        with EmbeddingStorage(":memory:") as store:
            store.insert_embeddings([_rec("x")])
            assert store.count() == 1


# ---------------------------------------------------------------------------
# Dimension guard
# ---------------------------------------------------------------------------

class TestEmbeddingStorageDimensions:
    def test_mixed_lengths_in_one_batch_rejected(self, storage):
        with pytest.raises(DimensionMismatchError):
            storage.insert_embeddings([_rec("a", [1.0, 2.0]), _rec("b", [1.0, 2.0, 3.0])])
        assert storage.count() == 0

    def test_mismatch_with_stored_dimension_rejected(self, storage):
        storage.insert_embeddings([_rec("a", [1.0, 2.0, 3.0])])
        with pytest.raises(DimensionMismatchError) as exc_info:
            storage.insert_embeddings([_rec("b", [1.0, 2.0])])
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2
        assert storage.count() == 1

    def test_empty_vector_rejected(self, storage):
        with pytest.raises(DimensionMismatchError):
            storage.insert_embeddings([EmbeddingRecord(text="a", vector=[])])

    def test_dimension_mismatch_is_a_storage_error(self):
        assert issubclass(DimensionMismatchError, StorageError)

    def test_clear_resets_dimension(self, storage):
        storage.insert_embeddings([_rec("a", [1.0, 2.0, 3.0])])
        storage.clear()
        storage.insert_embeddings([_rec("b", [1.0, 2.0])])
        assert storage.dimension == 2


# ---------------------------------------------------------------------------
# Replace / clear
# ---------------------------------------------------------------------------

class TestEmbeddingStorageReplace:
    def test_replace_drops_previous_records_for_source(self, storage):
        storage.insert_embeddings([_rec("old a", source="a.rs"), _rec("b", source="b.rs")])
        storage.replace_embeddings([_rec("new a", source="a.rs")])
        texts = sorted(r.text for r in storage.get_all_embeddings())
        assert texts == ["b", "new a"]

    def test_replace_without_sources_appends(self, storage):
        storage.insert_embeddings([_rec("x")])
        storage.replace_embeddings([_rec("y")])
        assert storage.count() == 2

    def test_replace_everything_may_change_dimension(self, storage):
        storage.insert_embeddings([_rec("a", [1.0, 2.0, 3.0], "a.rs")])
        storage.replace_embeddings([_rec("a2", [1.0, 2.0], "a.rs")])
        assert storage.dimension == 2
        assert storage.count() == 1

    def test_partial_replace_cannot_change_dimension(self, storage):
        storage.insert_embeddings([
            _rec("a", [1.0, 2.0, 3.0], "a.rs"),
            _rec("b", [1.0, 2.0, 3.0], "b.rs"),
        ])
        with pytest.raises(DimensionMismatchError):
            storage.replace_embeddings([_rec("a2", [1.0, 2.0], "a.rs")])
        assert storage.count() == 2

    def test_replace_all_swaps_contents(self, storage):
        storage.insert_embeddings([_rec("a", source="a.rs"), _rec("b", source="b.rs")])
        assert storage.replace_all([_rec("c", source="c.rs")]) == 1
        assert [r.text for r in storage.get_all_embeddings()] == ["c"]

    def test_replace_all_may_change_dimension(self, storage):
        storage.insert_embeddings([_rec("a", [1.0, 2.0, 3.0])])
        storage.replace_all([_rec("b", [1.0, 2.0])])
        assert storage.dimension == 2

    def test_replace_all_with_nothing_empties_store(self, storage):
        storage.insert_embeddings([_rec("a")])
        assert storage.replace_all([]) == 0
        assert storage.count() == 0

    def test_replace_all_rejects_mixed_lengths_and_keeps_old(self, storage):
        storage.insert_embeddings([_rec("a")])
        with pytest.raises(DimensionMismatchError):
            storage.replace_all([_rec("b", [1.0, 2.0]), _rec("c", [1.0])])
        assert [r.text for r in storage.get_all_embeddings()] == ["a"]

    def test_clear_returns_removed_count(self, storage):
        storage.insert_embeddings([_rec("a"), _rec("b")])
        assert storage.clear() == 2
        assert storage.count() == 0


# ---------------------------------------------------------------------------
# Persistence and failure modes
# ---------------------------------------------------------------------------

class TestEmbeddingStoragePersistence:
    def test_records_survive_reopen(self, tmp_path):
        path = tmp_path / "store.duckdb"
        with EmbeddingStorage(path) as first:
            first.insert_embeddings([_rec("one", source="a.rs")])
        with EmbeddingStorage(path) as second:
            second.insert_embeddings([_rec("two", source="b.rs")])
            assert [r.text for r in second.get_all_embeddings()] == ["one", "two"]

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "store.duckdb"
        with EmbeddingStorage(path) as store:
            assert store.count() == 0
        assert path.exists()

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "corrupt.duckdb"
        path.write_bytes(b"this is definitely not a duckdb database file" * 100)
        with pytest.raises(StorageError, match="Cannot open embedding store"):
            EmbeddingStorage(path)

    def test_path_under_a_file_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        with pytest.raises(StorageError):
            EmbeddingStorage(blocker / "store.duckdb")

    def test_non_numeric_vector_rejected_and_store_stays_usable(self, storage):
        storage.insert_embeddings([_rec("a", [1.0, 2.0, 3.0])])
        with pytest.raises(StorageError, match="not numeric"):
            storage.insert_embeddings([_rec("b", [1.0, "two", 3.0])])
        storage.insert_embeddings([_rec("c", [4.0, 5.0, 6.0])])
        assert [r.text for r in storage.get_all_embeddings()] == ["a", "c"]

    def test_use_after_close_raises(self, tmp_path):
        store = EmbeddingStorage(tmp_path / "s.duckdb")
        store.close()
        with pytest.raises(StorageError, match="closed"):
            store.get_all_embeddings()
