"""Typed failures raised by the indexing and retrieval pipeline.

Every error carries an HTTP-style ``status_code`` so the router can surface
it without knowing the concrete type.
"""


class RagError(Exception):
    """Base exception for qwen-rag errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ScanError(RagError):
    """Raised when the scan root does not exist or cannot be listed."""


class StorageError(RagError):
    """Raised when the embedding store cannot be opened, read or written."""


class DimensionMismatchError(StorageError):
    """Raised when vectors of different lengths would be mixed."""
    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, got {actual}"
        )


class GenerationError(RagError):
    """Raised when an embedding or generation call fails.

    Covers transport errors, non-2xx responses and malformed model output.
    """
    def __init__(self, message: str, provider_name: str = "unknown"):
        self.provider_name = provider_name
        super().__init__(f"Provider {provider_name} error: {message}", status_code=502)


class EmbeddingError(GenerationError):
    """Raised when a batch of embeddings is internally inconsistent."""
