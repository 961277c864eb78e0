"""FastAPI routes for document extraction and document chat.

Endpoint                                      Method  Description
/api/v1/documents/{id}/extract                POST    Queue (or run) extraction
/api/v1/documents/{id}/extract                GET     Extraction status of the document
/api/v1/jobs/{job_id}                         GET     Job state and progress
/api/v1/documents/{id}/chat                   POST    Single-shot answer
/api/v1/documents/{id}/chat/stream            POST    Server-sent-event answer stream
/api/v1/health                                GET     Health check + provider status

Services are read from ``app.state`` (populated by ``build_components`` in
``bookmind.main``) through ``Annotated`` dependencies.  Application
errors raised by the services are turned into JSON responses by
:class:`~bookmind.api.middleware.ErrorHandlingMiddleware`; the streaming
endpoint reports failures after the response has started as an ``error``
frame instead.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from bookmind.api.schemas import (
    ChatRequestBody,
    ChatResponse,
    ChunkFrame,
    DoneFrame,
    ErrorFrame,
    ErrorResponse,
    ExtractionStatusResponse,
    ExtractRequest,
    ExtractResponse,
    HealthResponse,
    JobStatusResponse,
    StartFrame,
)
from bookmind.interfaces.repositories import IDocumentRepository
from bookmind.models.chat import ChatRequest
from bookmind.services.chat_orchestrator import ChatOrchestrator
from bookmind.services.ingestion_service import IngestionService
from bookmind.utils.errors import BookmindError, DocumentNotFoundError
from bookmind.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"
_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
_STREAM_FAILED_MESSAGE = "Unexpected error while streaming the answer"


def _get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion_service


def _get_chat_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.chat_orchestrator


def _get_document_repository(request: Request) -> IDocumentRepository:
    return request.app.state.document_repository


IngestionDep = Annotated[IngestionService, Depends(_get_ingestion_service)]
ChatDep = Annotated[ChatOrchestrator, Depends(_get_chat_orchestrator)]
DocumentsDep = Annotated[IDocumentRepository, Depends(_get_document_repository)]


def sse_frame(event_type: str, frame: Any) -> str:
    """Encode one server-sent event ``data:`` frame."""
    payload = {"type": event_type, **frame.model_dump(mode="json")}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


@router.post(
    "/documents/{document_id}/extract",
    response_model=ExtractResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Queue content extraction for a document",
)
async def request_extraction(
    document_id: str,
    ingestion: IngestionDep,
    body: ExtractRequest | None = None,
) -> ExtractResponse:
    body = body or ExtractRequest()
    result = await ingestion.enqueue_extraction(
        document_id,
        file_url=body.file_url,
        direct_file_url=body.direct_file_url,
        force=body.force,
    )
    return ExtractResponse(**result.model_dump())


@router.get(
    "/documents/{document_id}/extract",
    response_model=ExtractionStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Extraction status of a document",
)
async def extraction_status(document_id: str, ingestion: IngestionDep) -> ExtractionStatusResponse:
    summary = await ingestion.get_extraction_status(document_id)
    return ExtractionStatusResponse(**summary.model_dump())


@router.get(
    "/jobs/{job_id}",
    response_model=JobStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="State and progress of an extraction job",
)
async def job_status(job_id: str, ingestion: IngestionDep) -> JobStatusResponse:
    status = await ingestion.get_job_status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return JobStatusResponse(
        job_id=status.job_id,
        state=status.state,
        progress=status.progress,
        attempts=status.attempts,
        result=status.result,
        failure_reason=status.failure_reason,
    )


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


def _chat_request(document_id: str, body: ChatRequestBody) -> ChatRequest:
    return ChatRequest(
        document_id=document_id,
        question=body.question,
        user_id=body.user_id,
        session_id=body.session_id,
        history=body.history,
    )


@router.post(
    "/documents/{document_id}/chat",
    response_model=ChatResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Ask a question about a document",
)
async def chat(document_id: str, body: ChatRequestBody, orchestrator: ChatDep) -> ChatResponse:
    result = await orchestrator.respond(_chat_request(document_id, body))
    return ChatResponse(**result.model_dump())


@router.post(
    "/documents/{document_id}/chat/stream",
    responses={404: {"model": ErrorResponse}},
    summary="Ask a question and stream the answer as server-sent events",
)
async def chat_stream(
    document_id: str,
    body: ChatRequestBody,
    orchestrator: ChatDep,
    documents: DocumentsDep,
) -> StreamingResponse:
    if await documents.get(document_id) is None:
        raise DocumentNotFoundError(message=f"Document {document_id} not found")

    stream = orchestrator.respond_stream(_chat_request(document_id, body))

    async def events() -> AsyncIterator[str]:
        yield sse_frame("start", StartFrame(session_id=stream.session_id))
        try:
            async for delta in stream:
                yield sse_frame("chunk", ChunkFrame(content=delta.content, provider=delta.provider))
        except BookmindError as exc:
            _logger.error(
                "chat_stream_failed",
                document_id=document_id,
                session_id=stream.session_id,
                error_type=type(exc).__name__,
                error=exc.message,
            )
            yield sse_frame("error", ErrorFrame(message=exc.message))
            return
        except Exception as exc:
            _logger.error(
                "chat_stream_failed",
                document_id=document_id,
                session_id=stream.session_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            yield sse_frame("error", ErrorFrame(message=_STREAM_FAILED_MESSAGE))
            return

        result = stream.result
        if result is None:
            yield sse_frame("error", ErrorFrame(message="Stream ended without a result"))
            return
        yield sse_frame(
            "done",
            DoneFrame(
                full_text=result.text,
                usage=result.usage,
                provider=result.provider,
                model=result.model,
                method=result.method,
            ),
        )

    return StreamingResponse(events(), media_type="text/event-stream", headers=_SSE_HEADERS)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_registry", {}))

    job_queue = getattr(request.app.state, "job_queue", None)
    providers["job_queue"] = job_queue is not None and job_queue.is_available()

    chunk_store = getattr(request.app.state, "chunk_store", None)
    providers["chunk_store"] = chunk_store is not None and chunk_store.is_available()

    chat_ok = bool(providers.get("chat"))
    if chat_ok and providers["job_queue"] and providers["chunk_store"]:
        status = "healthy"
    elif chat_ok:
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=_VERSION, providers=providers)
