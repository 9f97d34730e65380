"""Document store contract and an in-memory implementation."""

from __future__ import annotations

import threading
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from langchain_core.embeddings import Embeddings

from agentic_rag.retrieval.embedder import HashingEmbedder, cosine_similarity
from agentic_rag.types import Document

CONTENT_VECTOR_FIELD = "content_vector"
QA_VECTOR_FIELD = "qa_content_vector"


class DocumentStore(Protocol):
    """Minimal store contract consumed by the retrieval orchestrator.

    Scores are on the vendor similarity scale (0 to 2, higher is better);
    documents scoring below `score_threshold` are not returned.
    """

    def search(
        self,
        query: str,
        *,
        vector_field: str,
        knowledge_name: str,
        top_k: int,
        score_threshold: float,
    ) -> list[Document]:
        """Search one vector field of one knowledge base."""


@dataclass(slots=True)
class _StoredDocument:
    document: Document
    vectors: dict[str, list[float]]


class InMemoryDocumentStore:
    """Deterministic store used for local runs and tests.

    Each document is embedded twice: its content under `content_vector` and
    its `qa_content` metadata (falling back to content) under
    `qa_content_vector`. Scores are ``1 + cosine``.
    """

    def __init__(self, embedder: Embeddings | None = None) -> None:
        self.embedder = embedder or HashingEmbedder()
        self._partitions: dict[str, dict[str, _StoredDocument]] = {}
        self._lock = threading.Lock()

    def add_documents(self, documents: Iterable[Document], knowledge_name: str) -> list[str]:
        """Index documents into a knowledge base and return their ids."""
        if not knowledge_name.strip():
            raise ValueError("knowledge_name must not be empty")
        batch = [
            Document(
                id=document.id or uuid.uuid4().hex,
                content=document.content,
                score=0.0,
                metadata={**document.metadata, "knowledge_name": knowledge_name},
            )
            for document in documents
        ]
        if not batch:
            return []

        content_vectors = self.embedder.embed_documents([doc.content for doc in batch])
        qa_vectors = self.embedder.embed_documents(
            [str(doc.metadata.get("qa_content") or doc.content) for doc in batch]
        )
        with self._lock:
            partition = self._partitions.setdefault(knowledge_name, {})
            for doc, content_vector, qa_vector in zip(batch, content_vectors, qa_vectors, strict=True):
                partition[doc.id] = _StoredDocument(
                    document=doc,
                    vectors={CONTENT_VECTOR_FIELD: content_vector, QA_VECTOR_FIELD: qa_vector},
                )
        return [doc.id for doc in batch]

    def search(
        self,
        query: str,
        *,
        vector_field: str,
        knowledge_name: str,
        top_k: int,
        score_threshold: float,
    ) -> list[Document]:
        query_vector = self.embedder.embed_query(query)
        with self._lock:
            records = list(self._partitions.get(knowledge_name, {}).values())

        scored: list[Document] = []
        for record in records:
            vector = record.vectors.get(vector_field)
            if vector is None:
                raise ValueError(f"Unknown vector field: {vector_field}")
            score = 1.0 + cosine_similarity(query_vector, vector)
            if score < score_threshold:
                continue
            scored.append(
                Document(
                    id=record.document.id,
                    content=record.document.content,
                    score=score,
                    metadata=dict(record.document.metadata),
                )
            )
        scored.sort(key=lambda document: document.score, reverse=True)
        return scored[:top_k] if top_k > 0 else scored

    def list_knowledge_bases(self) -> list[str]:
        with self._lock:
            return sorted(self._partitions)

    def count(self, knowledge_name: str) -> int:
        with self._lock:
            return len(self._partitions.get(knowledge_name, {}))
