"""Splits a complex question into independently retrievable sub-questions."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from langchain_core.prompts import ChatPromptTemplate

from agentic_rag.context import RunContext
from agentic_rag.errors import OperationCancelledError, ParseError, UpstreamError
from agentic_rag.intent.models import Intent, clamp_steps
from agentic_rag.llm import generate_text
from agentic_rag.types import DecomposeResult

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """
You are an expert at breaking down complex questions into simpler sub-questions.

Given a complex question, decompose it into {max_sub_questions} or fewer specific,
searchable sub-questions. Each sub-question should be independently answerable
through document retrieval.

Output format (JSON array only, no other text):
["sub-question 1", "sub-question 2", ...]

Question type: {question_type}
Complexity: {complexity}
""".strip()

DECOMPOSE_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", _SYSTEM_PROMPT),
        ("human", "{question}"),
    ]
)


class SubQuestionDecomposer:
    """Sub-questions from the intent, else from the model, else the question itself."""

    def __init__(self, llm: Any | None) -> None:
        self.llm = llm

    def decompose(
        self,
        question: str,
        intent: Intent,
        ctx: RunContext | None = None,
    ) -> DecomposeResult:
        if intent.sub_questions:
            filtered = dedupe_questions(intent.sub_questions)
            if filtered:
                return DecomposeResult(sub_questions=filtered, source="intent")

        if self.llm is None:
            return DecomposeResult(sub_questions=[question], source="original")

        ctx = ctx or RunContext.background()
        messages = DECOMPOSE_PROMPT.format_messages(
            max_sub_questions=clamp_steps(intent.estimated_steps),
            question_type=intent.type.value,
            complexity=intent.complexity,
            question=question,
        )
        try:
            content = generate_text(self.llm, messages, ctx, purpose="decompose")
            sub_questions = dedupe_questions(parse_sub_questions(content))
        except OperationCancelledError:
            raise
        except (UpstreamError, ParseError) as exc:
            logger.warning("decomposition failed, using original question: %s", exc)
            return DecomposeResult(sub_questions=[question], source="original")

        if not sub_questions:
            return DecomposeResult(sub_questions=[question], source="original")
        return DecomposeResult(sub_questions=sub_questions, source="llm")


def parse_sub_questions(content: str) -> list[str]:
    """Parse a JSON string array, tolerating prose around the brackets."""
    text = content.strip()
    start = text.find("[")
    end = text.rfind("]")
    if start >= 0 and end > start:
        text = text[start : end + 1]
    try:
        value = json.loads(text)
    except ValueError as exc:
        raise ParseError(f"decomposer: invalid JSON array: {exc}") from exc
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ParseError("decomposer: expected a JSON array of strings")
    return value


def dedupe_questions(questions: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for question in questions:
        cleaned = question.strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)
