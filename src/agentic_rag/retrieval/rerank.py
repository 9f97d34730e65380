"""Reranker contract and the default lexical reranker."""

from __future__ import annotations

from abc import ABC, abstractmethod

from agentic_rag.retrieval.embedder import tokenize
from agentic_rag.types import Document


class Reranker(ABC):
    """Reorders candidates against a query.

    Output scores are relevance on the 0 to 1 scale that `rank_score`
    thresholds are compared against.
    """

    @abstractmethod
    def rerank(self, query: str, candidates: list[Document], top_k: int) -> list[Document]:
        """Return at most `top_k` candidates in final ranking order."""


class KeywordOverlapReranker(Reranker):
    """Blends store similarity with query-document term overlap.

    relevance = 0.8 * clamp(score - 1, 0, 1) + 0.2 * overlap
    """

    def rerank(self, query: str, candidates: list[Document], top_k: int) -> list[Document]:
        query_terms = set(tokenize(query))
        rescored: list[Document] = []
        for item in candidates:
            document_terms = set(tokenize(item.content))
            overlap = len(query_terms & document_terms) / max(1, len(query_terms))
            similarity = min(1.0, max(0.0, item.score - 1.0))
            rescored.append(
                Document(
                    id=item.id,
                    content=item.content,
                    score=(similarity * 0.8) + (overlap * 0.2),
                    metadata=dict(item.metadata),
                )
            )
        rescored.sort(key=lambda document: document.score, reverse=True)
        return rescored[:top_k] if top_k > 0 else rescored
