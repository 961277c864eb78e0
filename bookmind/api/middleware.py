"""API middleware: CORS, request logging and error handling.

Starlette runs middleware last-added-first, so ``create_app`` adds
:class:`ErrorHandlingMiddleware` before :class:`RequestLoggingMiddleware`
and the request log records the final status code.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from bookmind.api.schemas import ErrorResponse
from bookmind.utils.errors import (
    BookmindError,
    ConfigurationError,
    ContentParseError,
    DocumentNotFoundError,
    ProviderExhaustedError,
)
from bookmind.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware; all origins are allowed unless restricted."""
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def status_code_for(exc: BookmindError) -> int:
    """Map an application error onto an HTTP status code."""
    if isinstance(exc, DocumentNotFoundError):
        return 404
    if isinstance(exc, ContentParseError):
        return 400
    if isinstance(exc, (ProviderExhaustedError, ConfigurationError)):
        return 503
    return 500


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert ``BookmindError`` subclasses into JSON :class:`ErrorResponse` bodies.

    Details stay in the server log; the client sees the error class name
    and message only.  Other exceptions fall through to FastAPI's 500
    handler.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except BookmindError as exc:
            status_code = status_code_for(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
            return JSONResponse(status_code=status_code, content=body.model_dump())
