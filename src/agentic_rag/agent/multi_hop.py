"""Sequential sub-question retrieval followed by one synthesis call."""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.prompts import ChatPromptTemplate

from agentic_rag.agent.decomposer import SubQuestionDecomposer
from agentic_rag.agent.registry import RAG_TOOL_NAME, ToolRegistry, truncate
from agentic_rag.config import AgentConfig
from agentic_rag.context import RunContext
from agentic_rag.errors import (
    NoDocumentsError,
    OperationCancelledError,
    SynthesisError,
    UpstreamError,
)
from agentic_rag.intent.models import Intent
from agentic_rag.llm import generate_text
from agentic_rag.retrieval.merge import merge_by_id, sort_by_score
from agentic_rag.types import Document, MultiHopResult, ReasoningTrace, SubQuestionResult

logger = logging.getLogger(__name__)

_SYNTHESIS_SYSTEM_PROMPT = """
You are a professional AI assistant synthesizing answers from multiple retrieved documents.

Original question: {question}

Sub-questions and retrieved context:
{context}

Instructions:
1. Synthesize a comprehensive answer to the original question using all the retrieved information
2. If sub-questions have contradictory information, note the discrepancy
3. Be concise but complete
4. Cite specific information from the documents when relevant
""".strip()

SYNTHESIS_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", _SYNTHESIS_SYSTEM_PROMPT),
        ("human", "{question}"),
    ]
)

SUB_ANSWER_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "Answer the question briefly using only the documents below. "
            "If they do not contain the answer, say so.\n\nDocuments:\n{context}",
        ),
        ("human", "{question}"),
    ]
)


class MultiHopExecutor:
    def __init__(
        self,
        llm: Any,
        registry: ToolRegistry,
        *,
        config: AgentConfig | None = None,
        decomposer: SubQuestionDecomposer | None = None,
    ) -> None:
        self.llm = llm
        self.registry = registry
        self.config = config or AgentConfig()
        self.decomposer = decomposer or SubQuestionDecomposer(llm)

    def run(
        self,
        question: str,
        intent: Intent,
        *,
        knowledge_name: str,
        top_k: int,
        score: float,
        ctx: RunContext | None = None,
    ) -> MultiHopResult:
        """Retrieve for each sub-question in order, then synthesize.

        A missing tool or a failed retrieval yields a zero-document
        observation for that sub-question. Raises `NoDocumentsError` when no
        sub-question produced any document and `SynthesisError` when
        synthesis fails with no intermediate answers to fall back on.
        """

        ctx = ctx or RunContext.background()
        decomposition = self.decomposer.decompose(question, intent, ctx)
        sub_questions = decomposition.sub_questions[: self.config.max_sub_questions]

        trace = ReasoningTrace()
        trace.add(
            "thought",
            f"Decomposing question into {len(sub_questions)} sub-questions "
            f"(source: {decomposition.source})",
        )

        has_tool = self.registry.get(RAG_TOOL_NAME) is not None
        sub_results: list[SubQuestionResult] = []
        total = len(sub_questions)

        for index, sub_question in enumerate(sub_questions, start=1):
            trace.add("thought", f"Analyzing sub-question {index}/{total}: {sub_question!r}")
            action_input = {
                "query": sub_question,
                "knowledge_name": knowledge_name,
                "top_k": top_k,
                "score": score,
            }
            trace.add("action", RAG_TOOL_NAME, action_input=action_input)

            if not has_tool:
                trace.add(
                    "observation",
                    f"Found 0 documents for sub-question {index} (tool not available)",
                )
                continue

            try:
                output = self.registry.execute(RAG_TOOL_NAME, action_input, ctx)
            except OperationCancelledError:
                raise
            except Exception as exc:
                logger.warning("sub-question %d retrieval failed: %s", index, exc)
                trace.add(
                    "observation",
                    f"Found 0 documents for sub-question {index} (error: {exc})",
                )
                continue

            trace.add(
                "observation",
                f"Found {output.count} documents for sub-question {index}",
            )
            result = SubQuestionResult(
                sub_question=sub_question,
                documents=list(output.documents),
                index=index,
            )
            if self.config.answer_sub_questions and result.documents:
                result.answer = self._answer_sub_question(result, ctx)
            sub_results.append(result)

        if sum(len(result.documents) for result in sub_results) == 0:
            raise NoDocumentsError("multi_hop: all sub-questions failed to retrieve documents")

        references = sort_by_score(
            merge_by_id(*(result.documents for result in sub_results)),
            limit=top_k * 2,
        )

        try:
            final_answer = self._synthesize(question, sub_results, ctx)
        except OperationCancelledError:
            raise
        except UpstreamError as exc:
            partial = [result.answer for result in sub_results if result.answer]
            if not partial:
                raise SynthesisError(f"multi_hop: synthesize failed: {exc}") from exc
            logger.warning("synthesis failed, joining %d sub-answers: %s", len(partial), exc)
            final_answer = "\n\n".join(partial)

        trace.add("final_answer", f"Synthesized answer from {len(sub_results)} sub-questions")
        return MultiHopResult(
            final_answer=final_answer,
            all_references=references,
            sub_results=sub_results,
            reasoning_steps=trace.steps,
        )

    def _synthesize(
        self, question: str, sub_results: list[SubQuestionResult], ctx: RunContext
    ) -> str:
        if self.llm is None:
            raise UpstreamError("multi_hop: no chat model configured")
        messages = SYNTHESIS_PROMPT.format_messages(
            question=question,
            context=build_synthesis_context(sub_results, self.config.synthesis_doc_chars),
        )
        return generate_text(self.llm, messages, ctx, purpose="multi_hop synthesis").strip()

    def _answer_sub_question(self, result: SubQuestionResult, ctx: RunContext) -> str:
        if self.llm is None:
            return ""
        messages = SUB_ANSWER_PROMPT.format_messages(
            question=result.sub_question,
            context=_join_documents(result.documents, self.config.synthesis_doc_chars),
        )
        try:
            return generate_text(self.llm, messages, ctx, purpose="sub-question answer").strip()
        except OperationCancelledError:
            raise
        except UpstreamError as exc:
            logger.warning("sub-question %d answer failed: %s", result.index, exc)
            return ""


def build_synthesis_context(sub_results: list[SubQuestionResult], doc_chars: int = 500) -> str:
    blocks = []
    for position, result in enumerate(sub_results, start=1):
        blocks.append(
            f"Sub-question {position}: {result.sub_question}\n"
            f"Documents: {_join_documents(result.documents, doc_chars)}"
        )
    return "\n\n".join(blocks)


def _join_documents(documents: list[Document], doc_chars: int) -> str:
    return "\n".join(truncate(document.content, doc_chars) for document in documents)
