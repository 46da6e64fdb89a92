"""qwen-rag service application.

Main entry point for the HTTP surface over the local document context
pipeline.  Run with ``uvicorn qwen_rag.main:app``.

Modules:
    - rag: file scanning, embedding, DuckDB storage, retrieval, answering
    - generation: Ollama / Bedrock clients for embeddings and answers
    - cache: prompt → command result cache
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from qwen_rag import __version__
from qwen_rag.config import get_config
from qwen_rag.errors import RagError
from qwen_rag.generation import create_client
from qwen_rag.rag.router import get_rag_service, router as rag_router, set_rag_service
from qwen_rag.rag.service import RagService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
# botocore.auth logs the full SigV4 canonical request — including
# x-amz-security-token — which leaks credentials into the console.
for _noisy in (
    "botocore",
    "boto3",
    "urllib3",
    "urllib3.connectionpool",
    "httpx",
    "httpcore",
    "httpcore.http11",
    "httpcore.connection",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    client = create_client(config)
    rag_cfg = config.rag
    try:
        service = RagService(
            root_path=rag_cfg.root_path,
            storage_path=rag_cfg.storage_path,
            client=client,
            top_k=rag_cfg.top_k,
            max_keyword_files=rag_cfg.max_keyword_files,
            embed_concurrency=rag_cfg.embed_concurrency,
        )
        set_rag_service(service)
        logger.info(
            "RAG service ready: root=%s storage=%s",
            rag_cfg.root_path, rag_cfg.storage_path,
        )
    except RagError as exc:
        logger.error("Failed to initialise RAG service: %s", exc.message)
        service = None

    if service is not None and rag_cfg.index_on_startup:
        try:
            added = await service.build_index()
            logger.info("Startup index built: %d records added", added)
        except RagError as exc:
            logger.error("Startup index build failed: %s", exc.message)

    yield  # Application runs here

    # Shutdown
    if get_rag_service() is service and service is not None:
        service.close()
        set_rag_service(None)
    await client.aclose()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="qwen-rag API",
    description="Local document context for a query-answering assistant",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(rag_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
