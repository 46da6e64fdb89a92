"""RAG router — local document context endpoints.

Endpoints:
    POST /rag/index           — Full index build (appends)
    POST /rag/index/keywords  — Keyword-scoped index build (appends)
    POST /rag/reindex         — Full build that replaces the stored records
    POST /rag/query           — Answer a question with retrieved context
    POST /rag/search          — Retrieval only, with similarity scores
    GET  /rag/status          — Service state and record count

The router is the service's only caller in this process; it serializes every
operation behind one ``asyncio.Lock`` because ``RagService`` holds none.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from qwen_rag.errors import RagError

from .schemas import (
    IndexResponse,
    KeywordIndexRequest,
    QueryRequest,
    QueryResponse,
    SearchRequest,
    SearchResponse,
    SearchResultItem,
    StatusResponse,
)
from .service import RagService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rag", tags=["rag"])

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Singleton service management
# ---------------------------------------------------------------------------

_service: Optional[RagService] = None
_lock = asyncio.Lock()


def get_rag_service() -> Optional[RagService]:
    """Return the global RagService, or None if not configured."""
    return _service


def set_rag_service(service: Optional[RagService]) -> None:
    """Set (or clear) the global RagService."""
    global _service
    _service = service


def _not_configured(endpoint: str) -> JSONResponse:
    logger.warning("[rag/%s] Service not configured — returning 503", endpoint)
    return JSONResponse({"error": "RAG service not configured"}, status_code=503)


async def _run(endpoint: str, op: Callable[[RagService], Awaitable[T]]) -> "T | JSONResponse":
    """Run *op* against the configured service under the router lock.

    Typed pipeline failures map to their ``status_code``.
    """
    service = get_rag_service()
    if service is None:
        return _not_configured(endpoint)
    try:
        async with _lock:
            return await op(service)
    except RagError as exc:
        logger.error("[rag/%s] Failed: %s", endpoint, exc.message)
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/index", response_model=IndexResponse)
async def build_index() -> IndexResponse | JSONResponse:
    """Index every supported file under the configured root."""

    async def op(service: RagService) -> IndexResponse:
        added = await service.build_index()
        return IndexResponse(records_added=added, total_records=service.storage.count())

    return await _run("index", op)


@router.post("/index/keywords", response_model=IndexResponse)
async def build_index_for_keywords(request: KeywordIndexRequest) -> IndexResponse | JSONResponse:
    """Index files whose path mentions one of the keywords."""
    logger.info("[rag/index/keywords] Received: keywords=%s", request.keywords)

    async def op(service: RagService) -> IndexResponse:
        added = await service.build_index_for_keywords(request.keywords)
        return IndexResponse(records_added=added, total_records=service.storage.count())

    return await _run("index/keywords", op)


@router.post("/reindex", response_model=IndexResponse)
async def rebuild_index() -> IndexResponse | JSONResponse:
    """Index the whole root again and swap the result in for the stored records."""

    async def op(service: RagService) -> IndexResponse:
        added = await service.rebuild_index()
        return IndexResponse(records_added=added, total_records=service.storage.count())

    return await _run("reindex", op)


@router.post("/query", response_model=QueryResponse)
async def query(request: QueryRequest) -> QueryResponse | JSONResponse:
    """Answer a question using the most relevant indexed chunks as context."""

    async def op(service: RagService) -> QueryResponse:
        return QueryResponse(answer=await service.query(request.question))

    return await _run("query", op)


@router.post("/search", response_model=SearchResponse)
async def search(request: SearchRequest) -> SearchResponse | JSONResponse:
    """Return the chunks most similar to the question, with scores."""

    async def op(service: RagService) -> SearchResponse:
        chunks = await service.search(request.question, k=request.top_k)
        return SearchResponse(
            results=[
                SearchResultItem(text=c.text, score=c.score, source_path=c.source_path)
                for c in chunks
            ],
            question=request.question,
        )

    return await _run("search", op)


@router.get("/status", response_model=StatusResponse)
async def status() -> StatusResponse | JSONResponse:
    """Report the service state and how many records are stored."""
    service = get_rag_service()
    if service is None:
        return _not_configured("status")
    try:
        total = service.storage.count()
    except RagError as exc:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)
    return StatusResponse(
        state=service.state.value,
        total_records=total,
        root_path=str(service.root_path),
        storage_path=service.storage.db_path,
    )
