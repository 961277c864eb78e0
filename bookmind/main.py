"""bookmind FastAPI application entry point.

Wires providers, services and routes together via constructor injection.
Configuration comes from ``.env`` / environment variables (``Settings``)
with an optional ``config/config.yaml`` overlay; logging is configured
once at import.

``build_components`` is also used by the CLI, which needs the same
object graph without the web server.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from bookmind.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from bookmind.api.routes import router as api_router
from bookmind.api.websocket import websocket_job_progress
from bookmind.config.loader import load_config
from bookmind.config.settings import Settings
from bookmind.interfaces.embedding_provider import IEmbeddingProvider
from bookmind.interfaces.llm_provider import IChatProvider
from bookmind.pipeline.extraction_job import ExtractionJobProcessor
from bookmind.pipeline.job_queue import JobQueue
from bookmind.pipeline.progress_tracker import ProgressTracker
from bookmind.providers.fetch.http_blob_fetcher import HttpBlobFetcher
from bookmind.providers.llm.anthropic_provider import AnthropicChatProvider
from bookmind.providers.llm.gemini_provider import GeminiChatProvider
from bookmind.providers.llm.zhipu_provider import ZhipuChatProvider
from bookmind.providers.storage.sqlite_chat_repository import SQLiteChatRepository
from bookmind.providers.storage.sqlite_document_repository import SQLiteDocumentRepository
from bookmind.providers.storage.sqlite_job_store import SQLiteJobStore
from bookmind.services.artifact_generator import QuestionGenerator, SummaryGenerator
from bookmind.services.chat_orchestrator import ChatOrchestrator
from bookmind.services.chunker import TextChunker
from bookmind.services.content_extractor import ContentExtractor
from bookmind.services.context_assembler import ContextAssembler
from bookmind.services.ingestion_service import IngestionService
from bookmind.services.provider_router import ProviderRouter
from bookmind.services.retrieval import RetrievalEngine
from bookmind.utils.errors import JobQueueError
from bookmind.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_chat_providers(app_settings: Settings, http_client: httpx.AsyncClient) -> list[IChatProvider]:
    """Build the generation providers in the configured failover order.

    Unknown names are skipped with a warning.  Providers without an API key
    are still built; the router skips them at call time.
    """
    factories = {
        "zhipu": lambda: ZhipuChatProvider(settings=app_settings),
        "gemini": lambda: GeminiChatProvider(settings=app_settings, client=http_client),
        "anthropic": lambda: AnthropicChatProvider(settings=app_settings),
    }
    providers: list[IChatProvider] = []
    for name in app_settings.get_provider_order():
        factory = factories.get(name)
        if factory is None:
            _logger.warning("unknown_chat_provider", provider=name)
            continue
        providers.append(factory())
    return providers


def _build_embedding_provider(
    app_settings: Settings, http_client: httpx.AsyncClient
) -> IEmbeddingProvider | None:
    """Return the configured embedding provider, or ``None`` when it has no
    credentials (retrieval is then disabled and chat uses full content)."""
    provider: IEmbeddingProvider
    if app_settings.embedding_provider.lower() == "openai":
        from bookmind.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider = OpenAIEmbeddingProvider(settings=app_settings)
    else:
        from bookmind.providers.embedding.gemini_embedding_provider import (
            GeminiEmbeddingProvider,
        )

        provider = GeminiEmbeddingProvider(settings=app_settings, client=http_client)
    return provider if provider.is_available() else None


def _build_retrieval(
    app_settings: Settings, http_client: httpx.AsyncClient
) -> tuple[RetrievalEngine | None, Any]:
    embedding_provider = _build_embedding_provider(app_settings, http_client)
    if embedding_provider is None:
        _logger.warning(
            "retrieval_disabled",
            reason="no embedding provider configured",
            embedding_provider=app_settings.embedding_provider,
        )
        return None, None

    from bookmind.providers.chunk_store.chromadb_chunk_store import ChromaDBChunkStore

    chunk_store = ChromaDBChunkStore(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
    )
    retrieval = RetrievalEngine(
        embedding_provider=embedding_provider,
        chunk_store=chunk_store,
        chunker=TextChunker(
            chunk_size=app_settings.chunk_size, overlap=app_settings.chunk_overlap
        ),
        default_min_similarity=app_settings.default_min_similarity,
    )
    _logger.info(
        "retrieval_enabled",
        embedding_provider=embedding_provider.get_provider_name(),
        chunk_store=chunk_store.get_provider_name(),
        persist_dir=app_settings.chromadb_persist_dir,
    )
    return retrieval, chunk_store


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components; the web app stores them on
    ``app.state``.  Nothing is opened or started here: call the
    repositories' ``initialize`` and the queue's ``start`` afterwards.
    """
    http_client = httpx.AsyncClient(timeout=httpx.Timeout(120.0, connect=10.0))

    # -- Generation --
    chat_providers = _build_chat_providers(app_settings, http_client)
    router = ProviderRouter(chat_providers)

    # -- Retrieval --
    retrieval, chunk_store = _build_retrieval(app_settings, http_client)

    # -- Persistence --
    document_repository = SQLiteDocumentRepository(db_path=app_settings.database_path)
    chat_repository = SQLiteChatRepository(db_path=app_settings.database_path)
    job_store = SQLiteJobStore(db_path=app_settings.job_db_path)

    # -- Extraction pipeline --
    fetcher = HttpBlobFetcher(timeout_seconds=app_settings.fetch_timeout_seconds)
    extractor = ContentExtractor(
        fetcher=fetcher,
        proxy_base_url=app_settings.proxy_base_url,
        proxied_hosts=app_settings.get_proxied_hosts(),
    )
    processor = ExtractionJobProcessor(
        extractor=extractor,
        document_repository=document_repository,
        summary_generator=SummaryGenerator(
            router,
            target_words=app_settings.summary_target_words,
            input_chars=app_settings.summary_input_chars,
        ),
        question_generator=QuestionGenerator(
            router,
            question_count=app_settings.question_count,
            input_chars=app_settings.question_input_chars,
        ),
        retrieval=retrieval,
    )
    progress_tracker = ProgressTracker()
    job_queue = JobQueue.from_settings(app_settings, job_store, processor, progress_tracker)
    ingestion_service = IngestionService(
        document_repository=document_repository,
        processor=processor,
        job_queue=job_queue if app_settings.queue_enabled else None,
        retrieval=retrieval,
    )

    # -- Chat --
    context_assembler = ContextAssembler(
        document_repository=document_repository,
        chat_repository=chat_repository,
        retrieval=retrieval,
        full_content_max_chars=app_settings.full_content_max_chars,
        max_chunks=app_settings.max_context_chunks,
        min_similarity=app_settings.chat_min_similarity,
    )
    chat_orchestrator = ChatOrchestrator(
        router=router,
        context_assembler=context_assembler,
        document_repository=document_repository,
        chat_repository=chat_repository,
        max_history_messages=config.get("chat", {}).get("max_history_messages", 20),
    )

    # -- Provider registry for /health --
    available = [p.get_provider_name().value for p in router.available_providers()]
    provider_registry: dict[str, Any] = {
        "chat": bool(available),
        "chat_providers": available,
        "retrieval": retrieval is not None,
    }

    return {
        "http_client": http_client,
        "fetcher": fetcher,
        "provider_router": router,
        "chunk_store": chunk_store,
        "retrieval": retrieval,
        "document_repository": document_repository,
        "chat_repository": chat_repository,
        "job_store": job_store,
        "progress_tracker": progress_tracker,
        "job_queue": job_queue,
        "ingestion_service": ingestion_service,
        "chat_orchestrator": chat_orchestrator,
        "provider_registry": provider_registry,
    }


async def initialize_components(components: dict[str, Any], app_settings: Settings) -> None:
    """Create database tables and start the job queue when enabled.

    A queue that fails to start is logged and left stopped; extraction
    requests then run inline.
    """
    await components["document_repository"].initialize()
    await components["chat_repository"].initialize()
    if not app_settings.queue_enabled:
        _logger.info("job_queue_disabled")
        return
    try:
        await components["job_queue"].start()
    except JobQueueError as exc:
        _logger.warning("job_queue_degraded", error=exc.message)


async def close_components(components: dict[str, Any]) -> None:
    await components["job_queue"].stop()
    await components["fetcher"].aclose()
    await components["http_client"].aclose()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = build_components(settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    await initialize_components(components, settings)

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=settings.app_env,
        chat_providers=components["provider_registry"]["chat_providers"],
        retrieval=components["provider_registry"]["retrieval"],
        job_queue=components["job_queue"].is_available(),
    )

    yield

    await close_components(components)
    _logger.info("app_shutdown", message="Job queue stopped and HTTP clients closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="bookmind API",
        version=_VERSION,
        description=(
            "Extract text from ebook and audiobook documents, generate summaries "
            "and study questions, and chat with a document through retrieval-"
            "augmented generation with automatic provider failover."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=settings.get_cors_origins())

    # -- API routes --
    application.include_router(api_router)

    # -- WebSocket --
    @application.websocket("/ws/jobs/{job_id}")
    async def ws_job_progress(websocket: WebSocket, job_id: str) -> None:
        await websocket_job_progress(websocket, job_id)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "bookmind.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
