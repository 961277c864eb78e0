"""bookmind API layer: routes, schemas, WebSocket, and middleware."""

from bookmind.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from bookmind.api.routes import router
from bookmind.api.schemas import (
    ChatRequestBody,
    ChatResponse,
    ErrorResponse,
    ExtractionStatusResponse,
    ExtractResponse,
    HealthResponse,
    JobStatusResponse,
)
from bookmind.api.websocket import websocket_job_progress

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "websocket_job_progress",
    "ChatRequestBody",
    "ChatResponse",
    "ErrorResponse",
    "ExtractResponse",
    "ExtractionStatusResponse",
    "HealthResponse",
    "JobStatusResponse",
]
