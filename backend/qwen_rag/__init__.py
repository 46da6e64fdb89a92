"""qwen-rag: local document context for a query-answering assistant.

Scans a file tree, embeds each eligible file through an external generation
model, persists the vectors in DuckDB and answers questions with the most
similar chunks as context.
"""

__version__ = "0.1.0"
