import pytest

from agentic_rag.agent.registry import ToolRegistry
from agentic_rag.errors import HybridRetrievalError, UpstreamError
from agentic_rag.intent.models import Intent, IntentType
from agentic_rag.retrieval.hybrid import HybridRetriever, merge_limit, web_search_allowed
from agentic_rag.types import Document

from fakes import FakeRagTool, FakeWebTool, doc

REALTIME = Intent(type=IntentType.REALTIME_QUERY, strategy="hybrid", requires_external=True)
HYBRID = Intent(type=IntentType.HYBRID_SEARCH, strategy="hybrid", requires_external=True)


def _web(content: str) -> Document:
    return Document(id="", content=content, metadata={"source": "web_search", "url": "https://example.com"})


def test_realtime_puts_web_first_and_dedupes_content() -> None:
    registry = ToolRegistry(
        [
            FakeRagTool(lambda query: [doc("a", "shared text"), doc("b", "kb only")]),
            FakeWebTool([_web("shared text")]),
        ]
    )

    merged = HybridRetriever(registry).retrieve("today's price", REALTIME, top_k=5)

    assert len(merged) == 2
    assert merged[0].metadata["source"] == "web_search"
    assert merged[1].id == "b"


def test_non_realtime_puts_rag_first() -> None:
    registry = ToolRegistry([FakeRagTool(lambda query: [doc("a", "kb")]), FakeWebTool([_web("web")])])

    merged = HybridRetriever(registry).retrieve("latest", HYBRID, top_k=5)

    assert [d.id for d in merged] == ["a", ""]


def test_one_failing_path_uses_the_other() -> None:
    registry = ToolRegistry(
        [FakeRagTool(lambda query: [doc("a", "kb")]), FakeWebTool(error=UpstreamError("web down"))]
    )

    assert [d.id for d in HybridRetriever(registry).retrieve("q", HYBRID, top_k=5)] == ["a"]


def test_both_failing_raises() -> None:
    def broken(query: str):
        raise UpstreamError("kb down")

    registry = ToolRegistry([FakeRagTool(broken), FakeWebTool(error=UpstreamError("web down"))])

    with pytest.raises(HybridRetrievalError):
        HybridRetriever(registry).retrieve("q", HYBRID, top_k=5)


def test_merge_is_capped() -> None:
    registry = ToolRegistry(
        [
            FakeRagTool(lambda query: [doc(str(i), f"kb {i}") for i in range(10)]),
            FakeWebTool([_web(f"web {i}") for i in range(10)]),
        ]
    )

    assert len(HybridRetriever(registry).retrieve("q", HYBRID, top_k=3)) == 6
    assert merge_limit(0) == 10
    assert merge_limit(50) == 20


def test_web_search_gate() -> None:
    registry = ToolRegistry([FakeRagTool(), FakeWebTool()])

    assert web_search_allowed(HYBRID, registry)
    assert web_search_allowed(HYBRID, registry, ["web_search"])
    assert not web_search_allowed(HYBRID, registry, ["rag"])
    assert not web_search_allowed(Intent(type=IntentType.SIMPLE_QA), registry)
    assert not web_search_allowed(HYBRID, ToolRegistry([FakeRagTool()]))

    disabled = FakeWebTool()
    disabled.enabled = False
    assert not web_search_allowed(HYBRID, ToolRegistry([disabled]))
