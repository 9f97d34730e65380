"""Score normalization and document merge rules."""

from __future__ import annotations

from collections.abc import Iterable

from agentic_rag.types import Document


def rank_score(threshold: float) -> float:
    """Map a vendor-scale threshold (1 to 2) onto the 0 to 1 rerank scale."""
    if threshold >= 1:
        return threshold - 1
    return threshold


def merge_by_id(*groups: Iterable[Document]) -> list[Document]:
    """Deduplicate by id keeping the highest score; first-seen order is kept."""
    best: dict[str, Document] = {}
    for group in groups:
        for document in group:
            current = best.get(document.id)
            if current is None or document.score > current.score:
                best[document.id] = document
    return list(best.values())


def sort_by_score(documents: Iterable[Document], limit: int | None = None) -> list[Document]:
    ordered = sorted(documents, key=lambda document: document.score, reverse=True)
    if limit is not None and limit > 0:
        return ordered[:limit]
    return ordered


def merge_by_content(
    *groups: Iterable[Document], key_chars: int = 100, limit: int | None = None
) -> list[Document]:
    """Concatenate in group order, dropping documents whose leading content repeats."""
    seen: set[str] = set()
    merged: list[Document] = []
    for group in groups:
        for document in group:
            key = document.content[:key_chars]
            if key in seen:
                continue
            seen.add(key)
            merged.append(document)
            if limit is not None and len(merged) >= limit:
                return merged
    return merged
