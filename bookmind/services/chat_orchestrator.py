"""Chat orchestrator: grounded answers with provider failover.

Per request::

    BuildContext -> BuildPrompt -> provider 1 -> (fallback trigger) provider 2 -> ...
                                 -> success | ProviderExhaustedError

Single-shot replies come from :meth:`ChatOrchestrator.respond`.
:meth:`ChatOrchestrator.respond_stream` returns a :class:`ChatStream`
whose iteration yields :class:`StreamDelta` items as the provider
produces them; ``stream.result`` holds the final :class:`ChatResult` once
iteration finishes.  Both modes append the completed turn (question and
answer) to the session transcript.
"""

from __future__ import annotations

import secrets
from typing import AsyncIterator, Callable

import structlog

from bookmind.interfaces.repositories import IChatRepository, IDocumentRepository
from bookmind.models.chat import (
    AssembledContext,
    ChatMessage,
    ChatRequest,
    ChatResult,
    ProviderName,
    Role,
    StreamDelta,
    TokenUsage,
)
from bookmind.models.document import Document
from bookmind.services.context_assembler import ContextAssembler
from bookmind.services.prompts import build_chat_system_prompt
from bookmind.services.provider_router import ProviderRouter
from bookmind.utils.errors import DocumentNotFoundError, LLMError

logger = structlog.get_logger(logger_name=__name__)

_MAX_HISTORY_MESSAGES = 20


def new_session_id() -> str:
    """Return a fresh 128-bit hex session identifier."""
    return secrets.token_hex(16)


class ChatStream:
    """Single-use async iterable over a streamed reply.

    ``session_id`` is known before iteration starts; ``result`` is set
    after the last delta has been yielded and the turn has been saved.
    """

    def __init__(
        self,
        session_id: str,
        producer: Callable[[ChatStream], AsyncIterator[StreamDelta]],
    ) -> None:
        self.session_id = session_id
        self.result: ChatResult | None = None
        self._producer = producer
        self._consumed = False

    def __aiter__(self) -> AsyncIterator[StreamDelta]:
        if self._consumed:
            raise RuntimeError("ChatStream can only be iterated once")
        self._consumed = True
        return self._producer(self)


class ChatOrchestrator:
    """Answers questions about a document using the provider chain."""

    def __init__(
        self,
        router: ProviderRouter,
        context_assembler: ContextAssembler,
        document_repository: IDocumentRepository,
        chat_repository: IChatRepository,
        max_history_messages: int = _MAX_HISTORY_MESSAGES,
    ) -> None:
        self._router = router
        self._assembler = context_assembler
        self._documents = document_repository
        self._chats = chat_repository
        self._max_history = max_history_messages

    async def respond(self, request: ChatRequest) -> ChatResult:
        """Answer ``request.question`` in one shot.

        Raises
        ------
        bookmind.utils.errors.DocumentNotFoundError
            If the document does not exist.
        bookmind.utils.errors.ProviderExhaustedError
            If every provider failed with a fallback-trigger error.
        bookmind.utils.errors.LLMError
            If a provider failed with any other error.
        """
        session_id = request.session_id or new_session_id()
        document, context, messages = await self._prepare(request, session_id)

        generation, provider = await self._router.generate(messages)

        await self._save_turn(request, session_id, generation.content)
        result = ChatResult(
            text=generation.content,
            provider=provider,
            model=generation.model,
            method=context.method,
            usage=generation.usage,
            session_id=session_id,
        )
        logger.info(
            "chat_response",
            document_id=document.id,
            session_id=session_id,
            provider=provider.value,
            method=context.method.value,
            tokens=generation.usage.total_tokens,
        )
        return result

    def respond_stream(self, request: ChatRequest) -> ChatStream:
        """Start a streamed answer; nothing runs until the stream is iterated."""
        session_id = request.session_id or new_session_id()

        async def produce(stream: ChatStream) -> AsyncIterator[StreamDelta]:
            document, context, messages = await self._prepare(request, session_id)
            parts: list[str] = []
            usage = TokenUsage()
            provider: ProviderName | None = None

            async for name, piece in self._router.stream(messages):
                provider = name
                if piece.usage is not None:
                    usage = piece.usage
                if piece.content:
                    parts.append(piece.content)
                    yield StreamDelta(content=piece.content, provider=name)

            if provider is None:
                raise LLMError(message="Provider stream ended without output")
            full_text = "".join(parts)
            await self._save_turn(request, session_id, full_text)
            stream.result = ChatResult(
                text=full_text,
                provider=provider,
                model=self._model_name(provider),
                method=context.method,
                usage=usage,
                session_id=session_id,
            )
            logger.info(
                "chat_stream_complete",
                document_id=document.id,
                session_id=session_id,
                provider=provider.value,
                method=context.method.value,
                chars=len(full_text),
            )

        return ChatStream(session_id, produce)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _prepare(
        self, request: ChatRequest, session_id: str
    ) -> tuple[Document, AssembledContext, list[ChatMessage]]:
        document = await self._documents.get(request.document_id)
        if document is None:
            raise DocumentNotFoundError(message=f"Document {request.document_id} not found")

        context = await self._assembler.assemble(document, request.question, request.user_id)
        history = await self._history(request)
        messages = [
            ChatMessage(role=Role.SYSTEM, content=build_chat_system_prompt(document, context)),
            *history,
            ChatMessage(role=Role.USER, content=request.question),
        ]
        return document, context, messages

    async def _history(self, request: ChatRequest) -> list[ChatMessage]:
        if request.history:
            prior = [m for m in request.history if m.role != Role.SYSTEM]
        elif request.session_id:
            stored = await self._chats.get_session_messages(request.session_id)
            prior = [ChatMessage(role=m.role, content=m.content) for m in stored]
        else:
            prior = []
        return prior[-self._max_history :] if self._max_history > 0 else []

    async def _save_turn(self, request: ChatRequest, session_id: str, answer: str) -> None:
        await self._chats.append_message(
            session_id, request.document_id, Role.USER, request.question, user_id=request.user_id
        )
        await self._chats.append_message(
            session_id, request.document_id, Role.ASSISTANT, answer, user_id=request.user_id
        )

    def _model_name(self, provider: ProviderName) -> str:
        for candidate in self._router.providers:
            if candidate.get_provider_name() == provider:
                return candidate.get_model_name()
        return provider.value
