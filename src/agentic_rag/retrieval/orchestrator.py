"""Iterative query rewrite, dual-field search, rerank and cross-round merge."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from langchain_core.prompts import ChatPromptTemplate

from agentic_rag.config import RetrievalConfig
from agentic_rag.context import RunContext
from agentic_rag.errors import OperationCancelledError, UpstreamError
from agentic_rag.llm import generate_text
from agentic_rag.retrieval.merge import merge_by_id, rank_score, sort_by_score
from agentic_rag.retrieval.rerank import KeywordOverlapReranker, Reranker
from agentic_rag.retrieval.store import DocumentStore
from agentic_rag.types import Document, utc_now

logger = logging.getLogger(__name__)

_REWRITE_SYSTEM_PROMPT = """
You are very skilled at using rag for data retrieval. Your goal is to perform vectorized retrieval after fully understanding the user's question. Current time {time_now}.
You need to extract and optimize the search query content. Please rewrite the query according to the following rules:
- Rewrite the keywords that should be searched based on the user's question and context.
- If time is required, the specific date and time information to be queried will be provided based on the current time.
- Keep your search concise; your search should typically contain no more than three keywords, and at most five.
- Rewrite the keywords according to the current search engine query habits, and directly return the optimized search terms without any additional explanation.
- The search runs inside the knowledge base "{knowledge_name}"; do not use the knowledge base name itself as a keyword.
- Try to avoid using the keywords listed below, as previous searches using these keywords did not yield the expected results.
- Keywords already used: {used}
""".strip()

REWRITE_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", _REWRITE_SYSTEM_PROMPT),
        ("human", "The following are user questions: {question}"),
    ]
)


@dataclass(slots=True)
class RetrievalRequest:
    query: str
    knowledge_name: str
    top_k: int = 5
    score: float = 0.2

    @property
    def rank_score(self) -> float:
        return rank_score(self.score)


class RetrievalOrchestrator:
    """Runs up to `rewrite_rounds` retrieval rounds and merges them.

    Each round rewrites the query (avoiding keywords used earlier), searches
    both vector fields, keeps the best copy of each id, reranks to `top_k`
    and drops documents below the request's rank score. The accumulator keeps
    each id's best score across rounds. Without a rewrite model a single
    round runs on the raw query.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        llm: Any | None = None,
        reranker: Reranker | None = None,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.store = store
        self.llm = llm
        self.reranker = reranker or KeywordOverlapReranker()
        self.config = config or RetrievalConfig()

    def retrieve(
        self, request: RetrievalRequest, ctx: RunContext | None = None
    ) -> list[Document]:
        ctx = ctx or RunContext.background()
        rounds = self.config.rewrite_rounds if self.llm is not None else 1
        threshold = request.rank_score
        used: list[str] = []
        accumulator: dict[str, Document] = {}
        failed_rounds = 0

        for round_index in range(1, rounds + 1):
            ctx.check()
            optimized = self._optimized_query(request, used, ctx)
            used.append(optimized)

            try:
                reranked = self._search_round(request, optimized, ctx)
            except OperationCancelledError:
                raise
            except Exception as exc:
                failed_rounds += 1
                logger.warning("retrieval round %d failed: %s", round_index, exc)
                continue

            for document in reranked:
                if document.score < threshold:
                    logger.debug("dropping %s: score %.3f < %.3f", document.id, document.score, threshold)
                    continue
                current = accumulator.get(document.id)
                if current is None or document.score > current.score:
                    accumulator[document.id] = document

        if failed_rounds == rounds:
            raise UpstreamError(f"retrieval failed in all {rounds} rounds")

        results = sort_by_score(accumulator.values(), limit=request.top_k)
        logger.debug(
            "retrieved %d documents for %r from %s", len(results), request.query, request.knowledge_name
        )
        return results

    def rewrite_query(
        self, request: RetrievalRequest, used: list[str], ctx: RunContext
    ) -> str:
        if self.llm is None:
            return request.query
        messages = REWRITE_PROMPT.format_messages(
            time_now=utc_now(),
            knowledge_name=request.knowledge_name,
            used=" ".join(used),
            question=request.query,
        )
        return generate_text(self.llm, messages, ctx, purpose="rewrite query").strip()

    def _optimized_query(
        self, request: RetrievalRequest, used: list[str], ctx: RunContext
    ) -> str:
        try:
            optimized = self.rewrite_query(request, used, ctx)
        except OperationCancelledError:
            raise
        except UpstreamError as exc:
            logger.warning("query rewrite failed, using raw query: %s", exc)
            return request.query
        return optimized or request.query

    def _search_round(
        self, request: RetrievalRequest, optimized: str, ctx: RunContext
    ) -> list[Document]:
        results: list[list[Document]] = []
        for field in (self.config.content_vector_field, self.config.qa_vector_field):
            ctx.check()
            results.append(
                self.store.search(
                    optimized,
                    vector_field=field,
                    knowledge_name=request.knowledge_name,
                    top_k=request.top_k,
                    score_threshold=request.score,
                )
            )
        merged = merge_by_id(*results)
        return self.reranker.rerank(optimized, merged, request.top_k)
