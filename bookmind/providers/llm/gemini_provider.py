"""Google Gemini chat provider adapter.

Talks to the Generative Language REST API directly over ``httpx``:

- ``POST {base}/models/{model}:generateContent?key=...`` for single-shot replies
- ``POST {base}/models/{model}:streamGenerateContent?alt=sse&key=...`` for
  server-sent-event streaming

Gemini has no system role, so the system prompt is folded into the first
user turn; the ``assistant`` role maps to Gemini's ``model`` role.
"""

from __future__ import annotations

import json
from typing import Any, AsyncGenerator

import httpx
import structlog

from bookmind.config.settings import Settings
from bookmind.interfaces.llm_provider import IChatProvider, StreamPiece
from bookmind.models.chat import ChatMessage, Generation, ProviderName, Role, TokenUsage
from bookmind.providers.llm.quota import is_quota_message, is_quota_status
from bookmind.utils.errors import LLMError, ProviderLimitError

logger = structlog.get_logger(logger_name=__name__)

_TOP_P = 0.8


class GeminiChatProvider(IChatProvider):
    """Chat provider backed by the Gemini REST API."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._api_key = settings.gemini_api_key
        self._model = settings.gemini_model
        self._base_url = settings.gemini_base_url.rstrip("/")
        self._generation_config = {
            "temperature": settings.generation_temperature,
            "topP": _TOP_P,
            "maxOutputTokens": settings.generation_max_tokens,
        }
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(120.0, connect=10.0))

    # ------------------------------------------------------------------
    # IChatProvider implementation
    # ------------------------------------------------------------------

    async def generate(self, messages: list[ChatMessage]) -> Generation:
        url = f"{self._base_url}/models/{self._model}:generateContent"
        try:
            response = await self._client.post(
                url,
                params={"key": self._api_key},
                json=self._build_body(messages),
            )
        except httpx.HTTPError as exc:
            raise LLMError(
                message=f"Gemini request failed: {exc}",
                provider_name=self.get_provider_name().value,
            ) from exc

        if response.status_code >= 400:
            raise self._error_from_response(response.status_code, response.text)

        try:
            data = response.json()
            content = self._extract_text(data)
            usage = self._usage(data.get("usageMetadata"))
        except (ValueError, KeyError, TypeError, AttributeError, IndexError) as exc:
            raise LLMError(
                message=f"Gemini returned a malformed response: {exc}",
                provider_name=self.get_provider_name().value,
            ) from exc
        if not content:
            raise LLMError(
                message="Gemini returned an empty response",
                provider_name=self.get_provider_name().value,
            )
        logger.info("gemini_completion", model=self._model, tokens=usage.total_tokens)
        return Generation(content=content, model=self._model, usage=usage)

    async def generate_stream(self, messages: list[ChatMessage]) -> AsyncGenerator[StreamPiece, None]:
        url = f"{self._base_url}/models/{self._model}:streamGenerateContent"
        usage: TokenUsage | None = None
        try:
            async with self._client.stream(
                "POST",
                url,
                params={"alt": "sse", "key": self._api_key},
                json=self._build_body(messages),
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise self._error_from_response(response.status_code, body)
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    payload = line[len("data:"):].strip()
                    if not payload:
                        continue
                    try:
                        event = json.loads(payload)
                        text = self._extract_text(event)
                        meta = event.get("usageMetadata")
                        frame_usage = self._usage(meta) if meta else None
                    except (ValueError, KeyError, TypeError, AttributeError, IndexError):
                        logger.warning("gemini_stream_bad_frame", frame=payload[:200])
                        continue
                    if text:
                        yield StreamPiece(content=text)
                    if frame_usage is not None:
                        usage = frame_usage
        except httpx.HTTPError as exc:
            raise LLMError(
                message=f"Gemini stream failed: {exc}",
                provider_name=self.get_provider_name().value,
            ) from exc
        if usage is not None:
            yield StreamPiece(usage=usage)
        logger.info("gemini_stream_complete", model=self._model)

    def is_fallback_trigger(self, error: BaseException) -> bool:
        if isinstance(error, ProviderLimitError):
            return True
        if isinstance(error, httpx.HTTPStatusError):
            return is_quota_status(error.response.status_code)
        return False

    def get_provider_name(self) -> ProviderName:
        return ProviderName.GEMINI

    def get_model_name(self) -> str:
        return self._model

    def is_available(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_body(self, messages: list[ChatMessage]) -> dict[str, Any]:
        return {
            "contents": self._to_contents(messages),
            "generationConfig": self._generation_config,
        }

    @staticmethod
    def _to_contents(messages: list[ChatMessage]) -> list[dict[str, Any]]:
        """Convert chat messages into Gemini ``contents``.

        System messages are concatenated and prepended to the first user
        message.  If the conversation has no user message, the system text
        becomes a user turn of its own.
        """
        system_parts = [m.content for m in messages if m.role == Role.SYSTEM]
        system_text = "\n\n".join(system_parts)
        contents: list[dict[str, Any]] = []
        folded = not system_text
        for message in messages:
            if message.role == Role.SYSTEM:
                continue
            text = message.content
            if message.role == Role.USER and not folded:
                text = f"{system_text}\n\n{text}"
                folded = True
            role = "model" if message.role == Role.ASSISTANT else "user"
            contents.append({"role": role, "parts": [{"text": text}]})
        if not folded:
            contents.insert(0, {"role": "user", "parts": [{"text": system_text}]})
        return contents

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)

    @staticmethod
    def _usage(meta: dict[str, Any] | None) -> TokenUsage:
        if not meta:
            return TokenUsage()
        return TokenUsage(
            prompt_tokens=meta.get("promptTokenCount", 0),
            completion_tokens=meta.get("candidatesTokenCount", 0),
            total_tokens=meta.get("totalTokenCount", 0),
        )

    def _error_from_response(self, status_code: int, body: str) -> LLMError:
        message = body
        try:
            error = json.loads(body).get("error", {})
            message = error.get("message") or error.get("status") or body
        except (json.JSONDecodeError, AttributeError):
            pass
        name = self.get_provider_name().value
        if is_quota_status(status_code) or is_quota_message(message):
            logger.warning("gemini_quota_exceeded", status=status_code, error=message[:200])
            return ProviderLimitError(message=f"Gemini quota exceeded: {message}", provider_name=name)
        return LLMError(message=f"Gemini API error {status_code}: {message}", provider_name=name)
