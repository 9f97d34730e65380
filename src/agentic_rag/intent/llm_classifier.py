"""Single-call, prompt-based intent classifier."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from agentic_rag.context import RunContext
from agentic_rag.errors import ParseError
from agentic_rag.intent.models import Intent, IntentType
from agentic_rag.llm import generate_text

logger = logging.getLogger(__name__)

_TAXONOMY_PROMPT = """
You are an expert intent classifier for a RAG (Retrieval-Augmented Generation) system.

Your task is to analyze user questions and classify them into specific intent types.

Intent Types:
1. simple_qa: Simple factual questions (e.g., "What is RAG?")
2. fact_check: Verification questions (e.g., "Is it true that...")
3. multi_hop_qa: Multi-step reasoning (e.g., "Why does X cause Y?")
4. causal_reasoning: Cause-effect analysis (e.g., "What caused...")
5. procedural: How-to questions (e.g., "How to configure...")
6. comparison: Comparison analysis (e.g., "Compare A vs B")
7. summarization: Summary requests (e.g., "Summarize...")
8. aggregation: Data aggregation (e.g., "How many...", "Calculate...")
9. trend_analysis: Trend analysis (e.g., "What's the trend...")
10. hybrid_search: Needs external data (e.g., "Latest news about...")
11. realtime_query: Real-time data (e.g., "Current status...")
12. code_generation: Code generation (e.g., "Write code to...")
13. content_creation: Content creation (e.g., "Write an article about...")
14. clarification: Unclear questions
15. unknown: Cannot classify

Output JSON format:
{
  "type": "intent_type",
  "confidence": 0.85,
  "strategy": "simple_rag|react_agent|hybrid",
  "need_tools": ["rag", "web_search"],
  "estimated_steps": 3,
  "complexity": "simple|medium|complex",
  "requires_external": false,
  "knowledge_domains": ["machine_learning"],
  "sub_questions": ["sub question 1", "sub question 2"]
}

Examples:

Question: "什么是RAG?"
{"type": "simple_qa", "confidence": 0.95, "strategy": "simple_rag", "need_tools": ["rag"], "estimated_steps": 1, "complexity": "simple", "requires_external": false, "knowledge_domains": ["nlp"], "sub_questions": []}

Question: "对比 Elasticsearch 和 Milvus 的性能，并给出推荐"
{"type": "comparison", "confidence": 0.9, "strategy": "react_agent", "need_tools": ["rag", "web_search"], "estimated_steps": 4, "complexity": "complex", "requires_external": false, "knowledge_domains": ["database", "vector_search"], "sub_questions": ["Elasticsearch 的性能特点", "Milvus 的性能特点", "两者性能对比", "推荐方案"]}

Question: "最新的 GPT-5 有什么新功能?"
{"type": "hybrid_search", "confidence": 0.88, "strategy": "hybrid", "need_tools": ["rag", "web_search"], "estimated_steps": 2, "complexity": "medium", "requires_external": true, "knowledge_domains": ["ai", "llm"], "sub_questions": []}

Now analyze the following question and return ONLY the JSON output, no additional text:
""".strip()


def build_classifier_prompt(history: Sequence[str] | None = None) -> str:
    """Taxonomy prompt, followed by numbered conversation history when given."""
    if not history:
        return _TAXONOMY_PROMPT
    lines = [f"{index}. {message}" for index, message in enumerate(history, start=1)]
    return (
        _TAXONOMY_PROMPT
        + "\n\nConversation History:\n"
        + "\n".join(lines)
        + "\n\nConsider the context when classifying the current question."
    )


class LLMIntentClassifier:
    """Asks the chat model for a JSON intent.

    Malformed output never escapes: it degrades to an `unknown` intent with
    confidence 0.5. Failures of the model call itself are raised.
    """

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    def classify(
        self,
        text: str,
        *,
        history: Sequence[str] | None = None,
        ctx: RunContext | None = None,
    ) -> Intent:
        ctx = ctx or RunContext.background()
        messages = [
            SystemMessage(content=build_classifier_prompt(history)),
            HumanMessage(content=f"Question: {text}"),
        ]
        content = generate_text(self.llm, messages, ctx, purpose="classify intent")

        try:
            payload = parse_intent_payload(content)
        except ParseError as exc:
            logger.warning("unparsable intent output, using default: %s", exc)
            return default_llm_intent(text)

        payload["raw_text"] = text
        payload["classification_method"] = "llm"
        payload.pop("timestamp", None)
        try:
            intent = Intent.model_validate(payload)
        except ValidationError as exc:
            logger.warning("intent output failed validation, using default: %s", exc)
            return default_llm_intent(text)
        logger.debug("llm intent %s (%.2f)", intent.type.value, intent.confidence)
        return intent

    def classify_batch(
        self, texts: Sequence[str], *, ctx: RunContext | None = None
    ) -> list[Intent]:
        return [self.classify(text, ctx=ctx) for text in texts]


def default_llm_intent(text: str) -> Intent:
    return Intent(
        type=IntentType.UNKNOWN,
        confidence=0.5,
        raw_text=text,
        strategy="simple_rag",
        need_tools=["rag"],
        estimated_steps=1,
        complexity="medium",
        classification_method="llm",
    )


def parse_intent_payload(content: str) -> dict[str, Any]:
    """Parse model output as a JSON object, isolating one if wrapped in prose."""
    try:
        payload = json.loads(content)
    except ValueError:
        span = extract_json_object(content)
        if span is None:
            raise ParseError("no JSON object in model output") from None
        try:
            payload = json.loads(span)
        except ValueError as exc:
            raise ParseError(f"invalid JSON object: {exc}") from exc
    if not isinstance(payload, dict):
        raise ParseError("model output is not a JSON object")
    return payload


def extract_json_object(content: str) -> str | None:
    """Return the first balanced `{...}` span, skipping braces inside strings."""
    start = content.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(content)):
            char = content[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return content[start : index + 1]
        start = content.find("{", start + 1)
    return None
