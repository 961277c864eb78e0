"""Zhipu (GLM) chat provider adapter.

Zhipu's BigModel platform exposes an OpenAI-compatible chat completions
API, so this adapter reuses the ``openai`` async client pointed at the
Zhipu base URL.

Quota exhaustion is reported as HTTP 429 or as a vendor error code
(``1113`` insufficient balance, ``4006`` quota exceeded) in the error
body; both become :class:`ProviderLimitError` so the orchestrator can
fail over.
"""

from __future__ import annotations

from typing import AsyncGenerator

import openai
import structlog

from bookmind.config.settings import Settings
from bookmind.interfaces.llm_provider import IChatProvider, StreamPiece
from bookmind.models.chat import ChatMessage, Generation, ProviderName, TokenUsage
from bookmind.providers.llm.quota import is_quota_message, is_quota_status
from bookmind.utils.errors import LLMError, ProviderLimitError

logger = structlog.get_logger(logger_name=__name__)

_QUOTA_CODES = {"1113", "4006"}
_TOP_P = 0.7


class ZhipuChatProvider(IChatProvider):
    """Chat provider backed by Zhipu's OpenAI-compatible endpoint."""

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._api_key = settings.zhipu_api_key
        self._model = settings.zhipu_model
        self._temperature = settings.generation_temperature
        self._max_tokens = settings.generation_max_tokens
        self._client = client or openai.AsyncOpenAI(
            api_key=self._api_key or "unset",
            base_url=settings.zhipu_base_url,
            timeout=openai.Timeout(120.0, connect=10.0),
        )

    # ------------------------------------------------------------------
    # IChatProvider implementation
    # ------------------------------------------------------------------

    async def generate(self, messages: list[ChatMessage]) -> Generation:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=self._to_wire(messages),
                temperature=self._temperature,
                top_p=_TOP_P,
                max_tokens=self._max_tokens,
            )
        except openai.APIError as exc:
            raise self._wrap(exc) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMError(
                message="Zhipu returned an empty response",
                provider_name=self.get_provider_name().value,
            )
        usage = self._usage(response.usage)
        logger.info(
            "zhipu_completion",
            model=self._model,
            tokens=usage.total_tokens,
        )
        return Generation(content=content, model=response.model or self._model, usage=usage)

    async def generate_stream(self, messages: list[ChatMessage]) -> AsyncGenerator[StreamPiece, None]:
        try:
            stream = await self._client.chat.completions.create(
                model=self._model,
                messages=self._to_wire(messages),
                temperature=self._temperature,
                top_p=_TOP_P,
                max_tokens=self._max_tokens,
                stream=True,
            )
            async for chunk in stream:
                if chunk.choices:
                    delta = chunk.choices[0].delta.content
                    if delta:
                        yield StreamPiece(content=delta)
                if getattr(chunk, "usage", None):
                    yield StreamPiece(usage=self._usage(chunk.usage))
        except openai.APIError as exc:
            raise self._wrap(exc) from exc
        logger.info("zhipu_stream_complete", model=self._model)

    def is_fallback_trigger(self, error: BaseException) -> bool:
        if isinstance(error, ProviderLimitError):
            return True
        if isinstance(error, openai.APIError):
            return self._is_quota_error(error)
        return False

    def get_provider_name(self) -> ProviderName:
        return ProviderName.ZHIPU

    def get_model_name(self) -> str:
        return self._model

    def is_available(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_wire(messages: list[ChatMessage]) -> list[dict[str, str]]:
        return [{"role": m.role.value, "content": m.content} for m in messages]

    @staticmethod
    def _usage(raw: object | None) -> TokenUsage:
        if raw is None:
            return TokenUsage()
        return TokenUsage(
            prompt_tokens=getattr(raw, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(raw, "completion_tokens", 0) or 0,
            total_tokens=getattr(raw, "total_tokens", 0) or 0,
        )

    @staticmethod
    def _is_quota_error(exc: openai.APIError) -> bool:
        code = getattr(exc, "code", None)
        if code is not None and str(code) in _QUOTA_CODES:
            return True
        if is_quota_status(getattr(exc, "status_code", None)):
            return True
        return is_quota_message(str(exc))

    def _wrap(self, exc: openai.APIError) -> LLMError:
        name = self.get_provider_name().value
        if self._is_quota_error(exc):
            logger.warning("zhipu_quota_exceeded", model=self._model, error=str(exc))
            return ProviderLimitError(message=f"Zhipu quota exceeded: {exc}", provider_name=name)
        return LLMError(message=f"Zhipu API error: {exc}", provider_name=name)
