"""Chat transcript, request, and result models.

The chat orchestrator consumes a :class:`ChatRequest`, assembles grounding
context (tagged with a :class:`ContextMethod`), walks the ordered provider
chain and returns a :class:`ChatResult` naming the :class:`ProviderName`
that actually answered.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):  # noqa: UP042
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ContextMethod(str, Enum):  # noqa: UP042
    """Which context source grounded a chat response."""

    AI_RESOURCES = "ai_resources"
    EMBEDDING = "embedding"
    FULL_CONTENT = "full_content"


class ProviderName(str, Enum):  # noqa: UP042
    ZHIPU = "zhipu"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"


class ChatMessage(BaseModel):
    """One turn of a conversation, as sent to a provider."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class StoredMessage(BaseModel):
    """A persisted transcript entry of a chat session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    document_id: str
    user_id: str | None = None
    message_index: int = Field(ge=0)
    role: Role
    content: str
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )


class TokenUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Generation(BaseModel):
    """A provider's single-shot completion."""

    model_config = ConfigDict(frozen=True)

    content: str
    model: str
    usage: TokenUsage = Field(default_factory=TokenUsage)


class AssembledContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    method: ContextMethod
    chunk_count: int = 0


class ChatRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_id: str
    question: str = Field(min_length=1)
    user_id: str | None = None
    session_id: str | None = None
    history: list[ChatMessage] = Field(
        default_factory=list,
        description="Prior turns supplied by the caller, oldest first.",
    )


class ChatResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    provider: ProviderName
    model: str
    method: ContextMethod
    usage: TokenUsage = Field(default_factory=TokenUsage)
    session_id: str


class StreamDelta(BaseModel):
    """One incremental piece of a streamed reply."""

    model_config = ConfigDict(frozen=True)

    content: str
    provider: ProviderName
