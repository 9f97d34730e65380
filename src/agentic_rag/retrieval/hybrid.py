"""Concurrent knowledge base and web search fan-out."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor

from agentic_rag.agent.registry import (
    RAG_TOOL_NAME,
    WEB_SEARCH_TOOL_NAME,
    ToolRegistry,
    canonical_tool_name,
)
from agentic_rag.context import RunContext
from agentic_rag.errors import HybridRetrievalError, OperationCancelledError
from agentic_rag.intent.models import Intent, IntentType
from agentic_rag.retrieval.merge import merge_by_content
from agentic_rag.types import Document

logger = logging.getLogger(__name__)

CONTENT_KEY_CHARS = 100
MAX_MERGED = 20
DEFAULT_MERGED = 10


def merge_limit(top_k: int) -> int:
    if top_k <= 0:
        return DEFAULT_MERGED
    return min(2 * top_k, MAX_MERGED)


def web_search_allowed(
    intent: Intent, registry: ToolRegistry, enabled_tools: Sequence[str] = ()
) -> bool:
    """Whether the question needs, may use, and can reach web search."""
    if not intent.needs_external_data:
        return False
    allowed = {canonical_tool_name(name) for name in enabled_tools if name.strip()}
    if allowed and WEB_SEARCH_TOOL_NAME not in allowed:
        return False
    tool = registry.get(WEB_SEARCH_TOOL_NAME)
    return tool is not None and bool(getattr(tool, "enabled", True))


class HybridRetriever:
    """Runs knowledge base retrieval and web search in parallel.

    One failing path is logged and the other's documents are used; both
    failing raises `HybridRetrievalError`. Web results go first for realtime
    queries. Documents are deduplicated on their leading content since web
    results carry no store id.
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    def retrieve(
        self,
        question: str,
        intent: Intent,
        *,
        top_k: int,
        ctx: RunContext | None = None,
    ) -> list[Document]:
        ctx = ctx or RunContext.background()
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="hybrid") as pool:
            rag_future = pool.submit(self._run_tool, RAG_TOOL_NAME, {"query": question}, ctx)
            web_future = pool.submit(
                self._run_tool, WEB_SEARCH_TOOL_NAME, {"query": question}, ctx
            )
            rag_docs, rag_error = _collect(rag_future)
            web_docs, web_error = _collect(web_future)

        for error in (rag_error, web_error):
            if isinstance(error, OperationCancelledError):
                raise error
        if rag_error is not None and web_error is not None:
            raise HybridRetrievalError(
                f"hybrid retrieval failed: rag={rag_error}; web_search={web_error}"
            ) from rag_error
        if rag_error is not None:
            logger.warning("hybrid: knowledge base path failed, using web results: %s", rag_error)
        if web_error is not None:
            logger.warning("hybrid: web search path failed, using knowledge base results: %s", web_error)

        if intent.type == IntentType.REALTIME_QUERY:
            ordered = (web_docs, rag_docs)
        else:
            ordered = (rag_docs, web_docs)
        merged = merge_by_content(
            *ordered, key_chars=CONTENT_KEY_CHARS, limit=merge_limit(top_k)
        )
        logger.info(
            "hybrid merge: rag=%d web=%d merged=%d", len(rag_docs), len(web_docs), len(merged)
        )
        return merged

    def _run_tool(self, name: str, payload: dict[str, object], ctx: RunContext) -> list[Document]:
        return list(self.registry.execute(name, dict(payload), ctx).documents)


def _collect(future: Future[list[Document]]) -> tuple[list[Document], Exception | None]:
    try:
        return future.result(), None
    except Exception as exc:
        return [], exc
