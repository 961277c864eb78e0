"""Summary and question-set generation for extracted documents.

Both generators send the opening of the document text through the
:class:`ProviderRouter`, so quota failover works exactly as it does for
chat.  The question generator expects a JSON array and tolerates the
usual model habits: Markdown code fences, leading prose, and the odd
malformed entry (which is dropped).
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog

from bookmind.models.chat import ChatMessage, Role
from bookmind.models.document import Document, QuestionAnswer
from bookmind.services.prompts import build_questions_prompt, build_summary_prompt
from bookmind.services.provider_router import ProviderRouter
from bookmind.utils.errors import ArtifactGenerationError

logger = structlog.get_logger(logger_name=__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_question_answers(raw: str, limit: int | None = None) -> list[QuestionAnswer]:
    """Parse a model reply into question/answer pairs.

    Raises
    ------
    ArtifactGenerationError
        If no JSON array can be found or it holds no valid entries.
    """
    text = _FENCE.sub("", raw.strip()).strip()
    start, end = text.find("["), text.rfind("]")
    if start == -1 or end <= start:
        raise ArtifactGenerationError(message="Question reply contains no JSON array")
    try:
        items: Any = json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise ArtifactGenerationError(message=f"Question reply is not valid JSON: {exc}") from exc

    pairs: list[QuestionAnswer] = []
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        question = str(item.get("question") or "").strip()
        answer = str(item.get("answer") or "").strip()
        if question and answer:
            pairs.append(QuestionAnswer(question=question, answer=answer))
    if not pairs:
        raise ArtifactGenerationError(message="Question reply contains no valid entries")
    return pairs[:limit] if limit else pairs


class SummaryGenerator:
    def __init__(
        self,
        router: ProviderRouter,
        target_words: int = 200,
        input_chars: int = 8000,
    ) -> None:
        self._router = router
        self._target_words = target_words
        self._input_chars = input_chars

    async def generate(self, document: Document, text: str) -> str:
        excerpt = text[: self._input_chars]
        if not excerpt.strip():
            raise ArtifactGenerationError(message="No content to summarize")
        prompt = build_summary_prompt(document, excerpt, self._target_words)
        generation, provider = await self._router.generate(
            [ChatMessage(role=Role.USER, content=prompt)]
        )
        summary = generation.content.strip()
        if not summary:
            raise ArtifactGenerationError(
                message="Empty summary returned", provider_name=provider.value
            )
        logger.info(
            "summary_generated",
            document_id=document.id,
            provider=provider.value,
            words=len(summary.split()),
        )
        return summary


class QuestionGenerator:
    def __init__(
        self,
        router: ProviderRouter,
        question_count: int = 20,
        input_chars: int = 12000,
    ) -> None:
        self._router = router
        self._question_count = question_count
        self._input_chars = input_chars

    async def generate(self, document: Document, text: str) -> list[QuestionAnswer]:
        excerpt = text[: self._input_chars]
        if not excerpt.strip():
            raise ArtifactGenerationError(message="No content to generate questions from")
        prompt = build_questions_prompt(document, excerpt, self._question_count)
        generation, provider = await self._router.generate(
            [ChatMessage(role=Role.USER, content=prompt)]
        )
        questions = parse_question_answers(generation.content, limit=self._question_count)
        logger.info(
            "questions_generated",
            document_id=document.id,
            provider=provider.value,
            count=len(questions),
        )
        return questions
