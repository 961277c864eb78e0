"""Chat-generation provider adapters."""

from bookmind.providers.llm.anthropic_provider import AnthropicChatProvider
from bookmind.providers.llm.gemini_provider import GeminiChatProvider
from bookmind.providers.llm.zhipu_provider import ZhipuChatProvider

__all__ = ["AnthropicChatProvider", "GeminiChatProvider", "ZhipuChatProvider"]
