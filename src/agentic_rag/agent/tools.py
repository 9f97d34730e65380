"""Built-in tools: knowledge base retrieval and web search."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from agentic_rag.agent.registry import (
    RAG_TOOL_NAME,
    WEB_SEARCH_TOOL_NAME,
    Tool,
    ToolRegistry,
)
from agentic_rag.config import WebSearchConfig
from agentic_rag.context import RunContext
from agentic_rag.errors import UpstreamError
from agentic_rag.retrieval.orchestrator import RetrievalOrchestrator, RetrievalRequest
from agentic_rag.types import Document, ToolOutput

logger = logging.getLogger(__name__)


class RagToolInput(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    query: str = Field(min_length=1)
    knowledge_name: str = ""
    top_k: int | None = Field(default=None, ge=1)
    score: float | None = Field(default=None, ge=0.0)


class WebSearchToolInput(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    query: str = Field(min_length=1)
    max_results: int = 0


class RagRetrieverTool(Tool):
    """Runs the retrieval orchestrator; blank fields take per-request defaults."""

    name = RAG_TOOL_NAME
    description = (
        "Search documents from a knowledge base using semantic similarity. "
        "Use this tool to retrieve relevant information for answering questions."
    )
    args_schema = RagToolInput
    input_example = {
        "query": "search keywords",
        "knowledge_name": "kb_name",
        "top_k": 5,
        "score": 0.3,
    }

    def __init__(
        self,
        orchestrator: RetrievalOrchestrator,
        *,
        knowledge_name: str,
        top_k: int = 5,
        score: float = 0.2,
    ) -> None:
        self.orchestrator = orchestrator
        self.knowledge_name = knowledge_name
        self.top_k = top_k
        self.score = score

    def _run(self, ctx: RunContext, data: RagToolInput) -> ToolOutput:
        request = RetrievalRequest(
            query=data.query,
            knowledge_name=data.knowledge_name or self.knowledge_name,
            top_k=self.top_k if data.top_k is None else data.top_k,
            score=self.score if data.score is None else data.score,
        )
        documents = self.orchestrator.retrieve(request, ctx)
        return ToolOutput(
            documents=documents,
            data={"count": len(documents), "knowledge_name": request.knowledge_name},
        )


class WebSearchTool(Tool):
    """Bing-compatible web search.

    Disabled or unconfigured tools return an empty result tagged with
    `source`; HTTP and network failures raise `UpstreamError`.
    """

    name = WEB_SEARCH_TOOL_NAME
    description = (
        "Search the internet for the latest information and real-time data. "
        "Use this tool to retrieve up-to-date information that may not be "
        "present in the knowledge base."
    )
    args_schema = WebSearchToolInput
    input_example = {"query": "search keywords", "max_results": 5}

    def __init__(
        self,
        config: WebSearchConfig | None = None,
        *,
        client: httpx.Client | None = None,
    ) -> None:
        self.config = config or WebSearchConfig()
        self._client = client

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _run(self, ctx: RunContext, data: WebSearchToolInput) -> ToolOutput:
        if not self.config.enabled:
            return _empty_result(data.query, "disabled")
        if not self.config.configured:
            return _empty_result(data.query, "not_configured")

        max_results = data.max_results if data.max_results > 0 else self.config.max_results
        params = {"q": data.query, "count": str(max_results)}
        headers = {"Ocp-Apim-Subscription-Key": self.config.api_key}
        timeout = ctx.remaining(self.config.timeout_seconds)

        try:
            if self._client is not None:
                response = self._client.get(
                    self.config.endpoint, params=params, headers=headers, timeout=timeout
                )
            else:
                with httpx.Client(timeout=timeout) as client:
                    response = client.get(self.config.endpoint, params=params, headers=headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise UpstreamError(f"web_search: request failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamError(f"web_search: invalid response body: {exc}") from exc
        ctx.check()

        items = parse_bing_results(body)
        logger.debug("web search for %r returned %d results", data.query, len(items))
        return ToolOutput(
            documents=web_results_to_documents(items),
            data={"source": "bing", "query": data.query, "results": items},
        )


def parse_bing_results(body: Any) -> list[dict[str, str]]:
    """Extract title/url/snippet triples from `webPages.value[]`."""
    if not isinstance(body, dict):
        return []
    pages = body.get("webPages") or {}
    values = pages.get("value") if isinstance(pages, dict) else None
    items: list[dict[str, str]] = []
    for value in values or []:
        if not isinstance(value, dict):
            continue
        items.append(
            {
                "title": str(value.get("name", "")),
                "url": str(value.get("url", "")),
                "snippet": str(value.get("snippet", "")),
            }
        )
    return items


def web_results_to_documents(items: list[dict[str, str]]) -> list[Document]:
    # Web results carry no store id; the snippet is the content.
    return [
        Document(
            id="",
            content=item["snippet"],
            metadata={"url": item["url"], "title": item["title"], "source": "web_search"},
        )
        for item in items
    ]


def register_builtin_tools(
    registry: ToolRegistry,
    orchestrator: RetrievalOrchestrator,
    *,
    knowledge_name: str,
    top_k: int = 5,
    score: float = 0.2,
    web_search: WebSearchTool | None = None,
) -> None:
    """Register the default tool set used by the executors.

    Tools:
    - `rag_retriever`: rewrite/search/rerank retrieval over one knowledge base.
    - `web_search`: registered only when enabled in configuration.
    """

    registry.register(
        RagRetrieverTool(
            orchestrator,
            knowledge_name=knowledge_name,
            top_k=top_k,
            score=score,
        )
    )
    if web_search is not None and web_search.enabled:
        registry.register(web_search)


def _empty_result(query: str, source: str) -> ToolOutput:
    return ToolOutput(documents=[], data={"source": source, "query": query, "results": []})
