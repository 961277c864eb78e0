"""Unit tests for prompt builders."""

from __future__ import annotations

from bookmind.models.chat import AssembledContext, ContextMethod
from bookmind.models.document import Document
from bookmind.services.prompts import (
    NO_CONTENT_PLACEHOLDER,
    build_chat_system_prompt,
    build_questions_prompt,
    build_summary_prompt,
)


def _document(**overrides) -> Document:
    values = {"id": "doc-1", "title": "The Keeper", "authors": ["A. Writer", "B. Editor"]}
    values.update(overrides)
    return Document(**values)


class TestChatSystemPrompt:
    def test_language_rule_at_start_and_end(self) -> None:
        prompt = build_chat_system_prompt(
            _document(), AssembledContext(text="Excerpt.", method=ContextMethod.EMBEDDING)
        )
        assert prompt.startswith("CRITICAL LANGUAGE RULE (MANDATORY):")
        assert prompt.rstrip().endswith("reply in exactly that language.")

    def test_includes_context_and_metadata(self) -> None:
        prompt = build_chat_system_prompt(
            _document(categories=["Fiction"]),
            AssembledContext(text="The lamp went dark.", method=ContextMethod.EMBEDDING),
        )
        assert "RELEVANT BOOK EXCERPTS:\nThe lamp went dark." in prompt
        assert "- Title: The Keeper" in prompt
        assert "- Authors: A. Writer, B. Editor" in prompt
        assert "- Categories: Fiction" in prompt
        assert "- Type: ebook" in prompt

    def test_empty_context_uses_placeholder(self) -> None:
        prompt = build_chat_system_prompt(
            _document(title="", authors=[]),
            AssembledContext(text="  ", method=ContextMethod.FULL_CONTENT),
        )
        assert f"BOOK CONTENT:\n{NO_CONTENT_PLACEHOLDER}" in prompt
        assert "- Title: Untitled" in prompt
        assert "- Authors: Unknown" in prompt
        assert "- Categories: Uncategorized" in prompt


class TestArtifactPrompts:
    def test_summary_prompt(self) -> None:
        prompt = build_summary_prompt(_document(), "Some text.", 200)
        assert "approximately 200 words" in prompt
        assert prompt.endswith("BOOK CONTENT:\nSome text.")

    def test_questions_prompt_requests_json(self) -> None:
        prompt = build_questions_prompt(_document(), "Some text.", 20)
        assert "Generate 20 insightful questions" in prompt
        assert '[{"question": "...", "answer": "..."}]' in prompt
