"""Ordered provider failover shared by chat and artifact generation.

The router walks its providers in order.  A provider without credentials
is skipped.  An error its adapter classifies as a fallback trigger (quota
or rate limit) moves on to the next provider; any other error propagates
immediately.  When every provider has been tried,
:class:`ProviderExhaustedError` carries each provider's error.

Streaming fails over only while nothing has been yielded yet.  Once the
first content piece reaches the caller, an error ends the stream.
"""

from __future__ import annotations

from typing import AsyncIterator

import structlog

from bookmind.interfaces.llm_provider import IChatProvider, StreamPiece
from bookmind.models.chat import ChatMessage, Generation, ProviderName
from bookmind.utils.errors import ProviderExhaustedError

logger = structlog.get_logger(logger_name=__name__)

_EXHAUSTED_MESSAGE = "All AI providers are unavailable. Please try again later."


class ProviderRouter:
    def __init__(self, providers: list[IChatProvider]) -> None:
        self._providers = list(providers)

    @property
    def providers(self) -> list[IChatProvider]:
        return list(self._providers)

    def available_providers(self) -> list[IChatProvider]:
        return [p for p in self._providers if p.is_available()]

    async def generate(self, messages: list[ChatMessage]) -> tuple[Generation, ProviderName]:
        """Return the first successful generation and the provider that produced it."""
        errors: dict[str, Exception] = {}
        for provider in self.available_providers():
            name = provider.get_provider_name()
            try:
                generation = await provider.generate(messages)
            except Exception as exc:
                if not provider.is_fallback_trigger(exc):
                    logger.error("provider_failed", provider=name.value, error=str(exc))
                    raise
                errors[name.value] = exc
                logger.warning("provider_fallback", provider=name.value, error=str(exc))
                continue
            if errors:
                logger.info("provider_fallback_succeeded", provider=name.value, skipped=list(errors))
            return generation, name
        raise self._exhausted(errors)

    async def stream(
        self, messages: list[ChatMessage]
    ) -> AsyncIterator[tuple[ProviderName, StreamPiece]]:
        """Yield ``(provider, piece)`` pairs from the first provider that starts streaming."""
        errors: dict[str, Exception] = {}
        for provider in self.available_providers():
            name = provider.get_provider_name()
            started = False
            pieces = provider.generate_stream(messages)
            try:
                async for piece in pieces:
                    if piece.content:
                        started = True
                    yield name, piece
                return
            except Exception as exc:
                if started:
                    logger.error("provider_stream_aborted", provider=name.value, error=str(exc))
                    raise
                if not provider.is_fallback_trigger(exc):
                    logger.error("provider_failed", provider=name.value, error=str(exc))
                    raise
                errors[name.value] = exc
                logger.warning("provider_stream_fallback", provider=name.value, error=str(exc))
            finally:
                await pieces.aclose()
        raise self._exhausted(errors)

    @staticmethod
    def _exhausted(errors: dict[str, Exception]) -> ProviderExhaustedError:
        if not errors:
            return ProviderExhaustedError(message="No AI provider is configured", errors=errors)
        detail = "; ".join(f"{name}: {exc}" for name, exc in errors.items())
        logger.error("providers_exhausted", providers=list(errors))
        return ProviderExhaustedError(message=f"{_EXHAUSTED_MESSAGE} ({detail})", errors=errors)
