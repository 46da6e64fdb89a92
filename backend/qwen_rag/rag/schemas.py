"""Pydantic schemas for the RAG (local document context) API."""
from typing import List, Optional

from pydantic import BaseModel, Field


class KeywordIndexRequest(BaseModel):
    """Request body for POST /rag/index/keywords."""

    keywords: List[str] = Field(
        default_factory=list,
        description="Path keywords (case-insensitive); no match indexes every file",
    )


class IndexResponse(BaseModel):
    """Response for indexing operations."""

    records_added: int
    total_records: int


class QueryRequest(BaseModel):
    """Request body for POST /rag/query."""

    question: str = Field(..., min_length=1, description="Question to answer")


class QueryResponse(BaseModel):
    """Response for POST /rag/query."""

    answer: str


class SearchRequest(BaseModel):
    """Request body for POST /rag/search."""

    question: str = Field(..., min_length=1, description="Natural language or code query")
    top_k: int = Field(default=5, ge=1, le=50, description="Max results to return")


class SearchResultItem(BaseModel):
    """A single search result."""

    text: str
    score: float
    source_path: Optional[str] = None


class SearchResponse(BaseModel):
    """Response for POST /rag/search."""

    results: List[SearchResultItem]
    question: str


class StatusResponse(BaseModel):
    """Response for GET /rag/status."""

    state: str
    total_records: int
    root_path: str
    storage_path: str
