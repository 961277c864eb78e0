"""Abstract base class for chat-generation providers.

Defines the contract for any large-language-model backend that answers
chat prompts, single-shot or streamed.  Implementations wrap Zhipu's
OpenAI-compatible API, Google Gemini's REST API, or Anthropic's Messages
API.  Callers stay provider-agnostic and walk an ordered list of these
adapters, moving on only when :meth:`is_fallback_trigger` says so.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncGenerator

from bookmind.models.chat import ChatMessage, Generation, ProviderName, TokenUsage


class StreamPiece:
    """One item yielded by :meth:`IChatProvider.generate_stream`.

    Content pieces carry text; the final piece of a stream may instead carry
    only ``usage`` (with empty ``content``) once the provider reports it.
    """

    __slots__ = ("content", "usage")

    def __init__(self, content: str = "", usage: TokenUsage | None = None) -> None:
        self.content = content
        self.usage = usage

    def __repr__(self) -> str:
        return f"StreamPiece(content={self.content!r}, usage={self.usage!r})"


# Concrete implementations: ZhipuChatProvider, GeminiChatProvider, AnthropicChatProvider
# Located in: bookmind/providers/llm/
class IChatProvider(ABC):
    """Contract for generation services used by the chat orchestrator and
    the artifact generators."""

    @abstractmethod
    async def generate(self, messages: list[ChatMessage]) -> Generation:
        """Generate a complete reply to a conversation.

        Parameters
        ----------
        messages:
            Ordered conversation.  A leading ``system`` message, when
            present, carries the grounding prompt.

        Returns
        -------
        Generation
            The reply text, the model that produced it and token usage.

        Raises
        ------
        bookmind.utils.errors.ProviderLimitError
            If the provider reports quota exhaustion or rate limiting.
        bookmind.utils.errors.LLMError
            For any other API failure.
        """

    @abstractmethod
    def generate_stream(self, messages: list[ChatMessage]) -> AsyncGenerator[StreamPiece, None]:
        """Stream a reply as it is produced.

        Implementations are async generators: iterating yields
        :class:`StreamPiece` items in production order.  Errors raised
        before the first piece follow the same classification as
        :meth:`generate`.
        """

    @abstractmethod
    def is_fallback_trigger(self, error: BaseException) -> bool:
        """Return ``True`` if *error* should send the caller to the next provider.

        Quota exhaustion and rate limiting are triggers; authentication or
        malformed-request errors are not.
        """

    @abstractmethod
    def get_provider_name(self) -> ProviderName:
        """Return the identity of this provider."""

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the model identifier requests are sent to."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider has credentials configured.

        Implementations check configuration only; no network call is made.
        """
