"""Reference-grounded answer generation for the simple retrieval strategy."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any

from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

from agentic_rag.context import RunContext
from agentic_rag.llm import generate_text, stream_text
from agentic_rag.obs.tracing import preview
from agentic_rag.types import Document

NO_EVIDENCE_ANSWER = "无法在已索引文档中找到可验证证据。"

_SYSTEM_PROMPT = """
You are a professional AI assistant that can accurately answer user questions based on the reference information provided.
Please strictly abide by the following rules:
1. Answers must be based on the references provided and not rely on external knowledge
2. If the reference content has a clear answer, use the reference content directly to answer
3. If the reference is incomplete or vague, reasonable inferences can be made but the information must be explained
4. If the reference content is completely irrelevant or does not exist, inform the user that the question cannot be answered based on the available information
5. Keep your answers professional, concise, and accurate
6. When necessary, you can quote specific data or original text from the reference content

Currently available reference content:
{docs}
""".strip()

ANSWER_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", _SYSTEM_PROMPT),
        MessagesPlaceholder(variable_name="chat_history", optional=True),
        ("human", "Question: {question}"),
    ]
)


class AnswerGenerator:
    """Answers from retrieved documents.

    Without a chat model the answer is extractive: the top three snippets
    with their document ids, or a fixed "cannot verify" message.
    """

    def __init__(self, llm: Any | None = None, *, snippet_chars: int = 240) -> None:
        self.llm = llm
        self.snippet_chars = snippet_chars

    def build_messages(
        self,
        question: str,
        documents: Sequence[Document],
        history: Sequence[BaseMessage] = (),
    ) -> list[BaseMessage]:
        return ANSWER_PROMPT.format_messages(
            docs=format_documents(documents),
            chat_history=list(history),
            question=question,
        )

    def generate(
        self,
        question: str,
        documents: Sequence[Document],
        *,
        history: Sequence[BaseMessage] = (),
        ctx: RunContext | None = None,
    ) -> str:
        if self.llm is None:
            return self.extractive_answer(documents)
        messages = self.build_messages(question, documents, history)
        return generate_text(
            self.llm, messages, ctx or RunContext.background(), purpose="answer"
        ).strip()

    def stream(
        self,
        question: str,
        documents: Sequence[Document],
        *,
        history: Sequence[BaseMessage] = (),
        ctx: RunContext | None = None,
    ) -> Iterator[str]:
        if self.llm is None:
            yield self.extractive_answer(documents)
            return
        messages = self.build_messages(question, documents, history)
        yield from stream_text(
            self.llm, messages, ctx or RunContext.background(), purpose="answer stream"
        )

    def extractive_answer(self, documents: Sequence[Document]) -> str:
        if not documents:
            return NO_EVIDENCE_ANSWER
        lines = []
        for index, document in enumerate(documents[:3], start=1):
            citation = document.id or document.metadata.get("url", "web")
            lines.append(f"{index}. {preview(document.content, self.snippet_chars)} [{citation}]")
        return "\n".join(lines)


def format_documents(documents: Sequence[Document]) -> str:
    if not documents:
        return "(no reference content)"
    return "\n\n".join(
        f"[{index}] {document.content}" for index, document in enumerate(documents, start=1)
    )
