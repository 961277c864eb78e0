"""Context assembler: chooses the grounding text for a chat turn.

Three methods, tried in order:

- **AI_RESOURCES** (fast path) -- precomputed summary, overview, short
  summary and Q&A, plus the user's most recent conversation about the
  document.  Chosen when at least two artifact kinds exist, or one exists
  together with more than five prior history messages.
- **EMBEDDING** (RAG path) -- the question is embedded and the most
  similar chunks are formatted as labelled excerpts.
- **FULL_CONTENT** -- the extracted text, truncated with an explicit
  marker.  Used when there are no chunks, nothing relevant was found,
  every returned chunk is empty, or embedding / search failed.

Retrieval problems are never raised to the caller; they only move the
assembler to the next method.
"""

from __future__ import annotations

import structlog

from bookmind.interfaces.repositories import IChatRepository, IDocumentRepository
from bookmind.models.chat import AssembledContext, ContextMethod, Role, StoredMessage
from bookmind.models.document import Document, PrecomputedArtifacts
from bookmind.models.rag import ScoredChunk
from bookmind.services.retrieval import RetrievalEngine, calculate_optimal_limit
from bookmind.utils.text import truncate_with_marker

logger = structlog.get_logger(logger_name=__name__)

SECTION_SEPARATOR = "\n\n---\n\n"
_MAX_QUESTIONS = 20
_MIN_HISTORY_FOR_SINGLE_ARTIFACT = 5


def format_chunks(chunks: list[ScoredChunk], max_chunks: int = 10) -> str:
    """Format retrieved chunks as numbered, labelled excerpts."""
    blocks: list[str] = []
    for number, scored in enumerate(chunks[:max_chunks], start=1):
        relevance = round(scored.similarity * 100)
        page = scored.chunk.page_number
        if page is not None:
            header = f"[Excerpt {number} (Page {page}) - Relevance: {relevance}%]"
        else:
            header = f"[Excerpt {number} - Relevance: {relevance}%]"
        blocks.append(f"{header}\n{scored.chunk.text}")
    return SECTION_SEPARATOR.join(blocks)


def artifact_sections(artifacts: PrecomputedArtifacts) -> list[str]:
    """Return one formatted section per non-empty artifact kind."""
    sections: list[str] = []
    if artifacts.ai_summary and artifacts.ai_summary.strip():
        sections.append(f"**AI Summary:**\n{artifacts.ai_summary.strip()}")
    if artifacts.ai_overview and artifacts.ai_overview.strip():
        sections.append(f"**AI Overview:**\n{artifacts.ai_overview.strip()}")
    if artifacts.summary and artifacts.summary.strip():
        sections.append(f"**Summary:**\n{artifacts.summary.strip()}")
    if artifacts.questions:
        qa_lines = [
            f"Q{i}: {qa.question}\nA{i}: {qa.answer}"
            for i, qa in enumerate(artifacts.questions[:_MAX_QUESTIONS], start=1)
        ]
        sections.append("**Key Questions & Answers:**\n" + "\n\n".join(qa_lines))
    return sections


def format_history(history: list[StoredMessage]) -> str:
    lines = [
        f"{'You' if m.role == Role.USER else 'AI'}: {m.content}"
        for m in history
        if m.role in (Role.USER, Role.ASSISTANT)
    ]
    return "**Your Previous Chat History:**\n" + "\n\n".join(lines)


class ContextAssembler:
    """Builds :class:`AssembledContext` for a question about a document."""

    def __init__(
        self,
        document_repository: IDocumentRepository,
        chat_repository: IChatRepository,
        retrieval: RetrievalEngine | None,
        full_content_max_chars: int = 50000,
        max_chunks: int = 10,
        min_similarity: float = 0.25,
    ) -> None:
        self._documents = document_repository
        self._chats = chat_repository
        self._retrieval = retrieval
        self._full_content_max_chars = full_content_max_chars
        self._max_chunks = max_chunks
        self._min_similarity = min_similarity

    async def assemble(
        self, document: Document, question: str, user_id: str | None = None
    ) -> AssembledContext:
        context = await self._try_fast_path(document, user_id)
        if context is None:
            context = await self._try_rag_path(document, question)
        if context is None:
            context = self.full_content(document)
        logger.info(
            "context_method_selected",
            document_id=document.id,
            method=context.method.value,
            chars=len(context.text),
            chunks=context.chunk_count,
        )
        return context

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    async def _try_fast_path(self, document: Document, user_id: str | None) -> AssembledContext | None:
        artifacts = await self._documents.get_artifacts(document.id)
        sections = artifact_sections(artifacts)
        history: list[StoredMessage] = []
        if user_id:
            history = await self._chats.get_latest_user_session(document.id, user_id)

        use_fast_path = len(sections) >= 2 or (
            len(sections) >= 1 and len(history) > _MIN_HISTORY_FOR_SINGLE_ARTIFACT
        )
        if not use_fast_path:
            return None
        if history:
            sections.append(format_history(history))
        return AssembledContext(
            text=SECTION_SEPARATOR.join(sections),
            method=ContextMethod.AI_RESOURCES,
        )

    async def _try_rag_path(self, document: Document, question: str) -> AssembledContext | None:
        if self._retrieval is None:
            return None
        try:
            total = await self._retrieval.count_chunks(document.id)
            if total == 0:
                return None
            query_embedding = await self._retrieval.embed_query(question)
            limit = min(calculate_optimal_limit(total), self._max_chunks)
            results = await self._retrieval.search(
                document.id, query_embedding, limit=limit, min_similarity=self._min_similarity
            )
        except Exception as exc:
            logger.warning(
                "rag_path_failed",
                document_id=document.id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        usable = [r for r in results if r.chunk.text.strip()]
        if not usable:
            logger.info(
                "rag_path_no_usable_chunks",
                document_id=document.id,
                returned=len(results),
            )
            return None
        return AssembledContext(
            text=format_chunks(usable, self._max_chunks),
            method=ContextMethod.EMBEDDING,
            chunk_count=min(len(usable), self._max_chunks),
        )

    def full_content(self, document: Document) -> AssembledContext:
        text = document.extracted_content or ""
        return AssembledContext(
            text=truncate_with_marker(text, self._full_content_max_chars),
            method=ContextMethod.FULL_CONTENT,
        )
