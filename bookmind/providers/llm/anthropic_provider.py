"""Anthropic chat provider adapter.

Wraps the ``anthropic`` async client.  Differences from the
OpenAI-compatible adapter:
    - The system prompt is a top-level parameter, not a message
    - Responses are a list of content blocks; text blocks are joined
    - Streaming uses ``messages.stream`` and reports usage on the final message
"""

from __future__ import annotations

from typing import AsyncGenerator

import anthropic
import structlog

from bookmind.config.settings import Settings
from bookmind.interfaces.llm_provider import IChatProvider, StreamPiece
from bookmind.models.chat import ChatMessage, Generation, ProviderName, Role, TokenUsage
from bookmind.providers.llm.quota import is_quota_message
from bookmind.utils.errors import LLMError, ProviderLimitError

logger = structlog.get_logger(logger_name=__name__)


class AnthropicChatProvider(IChatProvider):
    """Chat provider backed by the Anthropic Messages API."""

    def __init__(self, settings: Settings, client: anthropic.AsyncAnthropic | None = None) -> None:
        self._settings = settings
        self._api_key = settings.anthropic_api_key
        self._model = settings.anthropic_model
        self._temperature = settings.generation_temperature
        self._max_tokens = settings.generation_max_tokens
        self._client = client or anthropic.AsyncAnthropic(api_key=self._api_key or "unset")

    # ------------------------------------------------------------------
    # IChatProvider implementation
    # ------------------------------------------------------------------

    async def generate(self, messages: list[ChatMessage]) -> Generation:
        system, turns = self._split(messages)
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=system,
                messages=turns,
                temperature=self._temperature,
            )
        except anthropic.APIError as exc:
            raise self._wrap(exc) from exc

        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise LLMError(
                message="Anthropic returned no text content",
                provider_name=self.get_provider_name().value,
            )
        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )
        logger.info(
            "anthropic_completion",
            model=self._model,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
        )
        return Generation(content="\n".join(text_blocks), model=self._model, usage=usage)

    async def generate_stream(self, messages: list[ChatMessage]) -> AsyncGenerator[StreamPiece, None]:
        system, turns = self._split(messages)
        try:
            async with self._client.messages.stream(
                model=self._model,
                max_tokens=self._max_tokens,
                system=system,
                messages=turns,
                temperature=self._temperature,
            ) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield StreamPiece(content=text)
                final = await stream.get_final_message()
        except anthropic.APIError as exc:
            raise self._wrap(exc) from exc
        yield StreamPiece(
            usage=TokenUsage(
                prompt_tokens=final.usage.input_tokens,
                completion_tokens=final.usage.output_tokens,
                total_tokens=final.usage.input_tokens + final.usage.output_tokens,
            )
        )
        logger.info("anthropic_stream_complete", model=self._model)

    def is_fallback_trigger(self, error: BaseException) -> bool:
        if isinstance(error, ProviderLimitError):
            return True
        return isinstance(error, anthropic.RateLimitError)

    def get_provider_name(self) -> ProviderName:
        return ProviderName.ANTHROPIC

    def get_model_name(self) -> str:
        return self._model

    def is_available(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _split(messages: list[ChatMessage]) -> tuple[str, list[dict[str, str]]]:
        system = "\n\n".join(m.content for m in messages if m.role == Role.SYSTEM)
        turns = [
            {"role": m.role.value, "content": m.content}
            for m in messages
            if m.role != Role.SYSTEM
        ]
        return system, turns

    def _wrap(self, exc: anthropic.APIError) -> LLMError:
        name = self.get_provider_name().value
        if isinstance(exc, anthropic.RateLimitError) or (
            getattr(exc, "status_code", None) == 429
        ) or (isinstance(exc, anthropic.APIStatusError) and is_quota_message(str(exc))):
            logger.warning("anthropic_rate_limited", model=self._model, error=str(exc))
            return ProviderLimitError(
                message=f"Anthropic rate limit exceeded: {exc}", provider_name=name
            )
        return LLMError(message=f"Anthropic API error: {exc}", provider_name=name)
