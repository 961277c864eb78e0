"""Prompt templates for chat answers and precomputed artifacts.

The chat system prompt pins the reply language twice, at the top and
again as the final instruction.  None of the providers has a native
language-pinning parameter, so the wording is the only enforcement.
"""

from __future__ import annotations

from bookmind.models.chat import AssembledContext, ContextMethod
from bookmind.models.document import Document

NO_CONTENT_PLACEHOLDER = "[No content available]"

_LANGUAGE_RULE = """\
CRITICAL LANGUAGE RULE (MANDATORY):
- Identify the language of the user's latest question.
- Respond in EXACTLY the same language as that question.
- Do NOT translate your answer into the language of the book or of this prompt.
- If the question mixes languages, use the language that dominates the question."""

_CONTEXT_LABELS = {
    ContextMethod.AI_RESOURCES: "BOOK RESOURCES (summaries, key questions and previous conversation)",
    ContextMethod.EMBEDDING: "RELEVANT BOOK EXCERPTS",
    ContextMethod.FULL_CONTENT: "BOOK CONTENT",
}


def build_chat_system_prompt(document: Document, context: AssembledContext) -> str:
    """Build the grounded system prompt for one chat turn."""
    title = document.title or "Untitled"
    authors = ", ".join(document.authors) or "Unknown"
    categories = ", ".join(document.categories) or "Uncategorized"
    content = context.text.strip() or NO_CONTENT_PLACEHOLDER
    label = _CONTEXT_LABELS[context.method]

    return f"""{_LANGUAGE_RULE}

You are a knowledgeable reading assistant helping a reader understand the book "{title}".

RULES:
1. Base your answers on the book material provided below.
2. When the material does not cover the question, say so plainly before offering general knowledge.
3. Quote or reference specific passages when it helps; mention page numbers when excerpts include them.
4. Never invent quotations, characters, events or page numbers.
5. Keep answers focused and well structured; use short paragraphs or lists.
6. For questions about the book as a whole, draw on the summaries and key questions first.
7. Stay respectful of the author's work and avoid spoiling content the reader did not ask about.
8. Follow the CRITICAL LANGUAGE RULE above in every reply.

{label}:
{content}

BOOK METADATA:
- Title: {title}
- Authors: {authors}
- Categories: {categories}
- Type: {document.document_type.value}

IMPORTANT: Before responding, identify the user's question language and reply in exactly that language."""


def build_summary_prompt(document: Document, excerpt: str, target_words: int) -> str:
    title = document.title or "this book"
    return f"""Write a summary of approximately {target_words} words of the book "{title}".

Requirements:
- Write the summary in the same language as the book content below.
- Cover the main themes, arguments or plot, and what a reader gains from the book.
- Do not add headings, bullet lists or commentary about the task.

BOOK CONTENT:
{excerpt}"""


def build_questions_prompt(document: Document, excerpt: str, question_count: int) -> str:
    title = document.title or "this book"
    return f"""Generate {question_count} insightful questions a reader might ask about the book "{title}", each with a concise answer grounded in the content below.

Requirements:
- Write questions and answers in the same language as the book content.
- Answers must be supported by the content; do not invent facts.
- Return ONLY a JSON array, with no other text, in this exact form:
[{{"question": "...", "answer": "..."}}]

BOOK CONTENT:
{excerpt}"""
