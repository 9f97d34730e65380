import httpx
import pytest

from agentic_rag.agent.service import AgenticRagService, AgenticRequest, dedupe_references
from agentic_rag.agent.tools import WebSearchTool
from agentic_rag.config import WebSearchConfig
from agentic_rag.errors import UpstreamError
from agentic_rag.intent.models import Intent, IntentType
from agentic_rag.types import Document

from fakes import FailingStore, HandlerChatModel, StaticClassifier, doc

COMPARISON = Intent(
    type=IntentType.COMPARISON,
    confidence=0.9,
    strategy="react_agent",
    sub_questions=["How does Raft elect a leader", "How does Paxos reach consensus"],
)
AGGREGATION = Intent(type=IntentType.AGGREGATION, confidence=0.8, strategy="react_agent")
HYBRID = Intent(type=IntentType.HYBRID_SEARCH, confidence=0.8, strategy="hybrid", requires_external=True)


def _request(question: str = "compare raft and paxos", **overrides) -> AgenticRequest:
    return AgenticRequest(question=question, knowledge_name="kb", score=0.0, **overrides)


def _web_search(body: dict) -> WebSearchTool:
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body)))
    return WebSearchTool(WebSearchConfig(enabled=True, api_key="k"), client=client)


def test_simple_rag_without_chat_model(store) -> None:
    service = AgenticRagService(store=store)

    response = service.answer(_request("什么是Raft?"))

    assert response.strategy_used == "simple_rag"
    assert response.fallback_from is None
    assert response.intent.type == IntentType.SIMPLE_QA
    assert response.intent.classification_method == "rule"
    assert response.references
    assert response.answer.startswith("1. ")
    assert response.execution_time_ms >= 0


def test_decomposable_intent_runs_multi_hop(store, llm) -> None:
    service = AgenticRagService(store=store, llm=llm, classifier=StaticClassifier(COMPARISON))

    response = service.answer(_request())

    assert response.strategy_used == "multi_hop"
    assert response.answer == "synthesized answer"
    ids = [reference.id for reference in response.references]
    assert sorted(ids) == ["paxos", "raft"]
    assert response.reasoning_steps[0].content.startswith("Decomposing question into 2")


def test_other_agent_intents_run_react(store, llm) -> None:
    service = AgenticRagService(store=store, llm=llm, classifier=StaticClassifier(AGGREGATION))

    response = service.answer(_request("how many leaders does raft have"))

    assert response.strategy_used == "react_agent"
    assert response.answer == "react answer"
    assert "raft" in [reference.id for reference in response.references]
    assert [step.kind for step in response.reasoning_steps][-1] == "final_answer"


def test_react_failure_falls_back_to_simple(store) -> None:
    def reply(messages) -> str:
        system = str(messages[0].content)
        if "ReAct" in system:
            return "no protocol here"
        if "rag for data retrieval" in system:
            return "raft"
        return "grounded answer"

    service = AgenticRagService(
        store=store, llm=HandlerChatModel(reply), classifier=StaticClassifier(AGGREGATION)
    )

    response = service.answer(_request())

    assert response.strategy_used == "simple_rag"
    assert response.fallback_from == "react_agent"
    assert response.answer == "grounded answer"


def test_hybrid_merges_web_and_knowledge_base(store, llm) -> None:
    web = _web_search(
        {"webPages": {"value": [{"name": "n", "url": "https://example.com", "snippet": "Raft 2.0 released"}]}}
    )
    service = AgenticRagService(store=store, llm=llm, classifier=StaticClassifier(HYBRID), web_search=web)

    response = service.answer(_request("latest raft release"))

    assert response.strategy_used == "hybrid"
    assert response.answer == "grounded answer"
    sources = [reference.metadata.get("source") for reference in response.references]
    assert "web_search" in sources
    assert any(reference.id == "raft" for reference in response.references)


def test_hybrid_without_web_search_uses_simple(store, llm) -> None:
    service = AgenticRagService(store=store, llm=llm, classifier=StaticClassifier(HYBRID))

    response = service.answer(_request("latest raft release"))

    assert response.strategy_used == "simple_rag"
    assert response.fallback_from is None


def test_empty_hybrid_result_falls_back(llm) -> None:
    from agentic_rag.retrieval.store import InMemoryDocumentStore

    service = AgenticRagService(
        store=InMemoryDocumentStore(),
        llm=llm,
        classifier=StaticClassifier(HYBRID),
        web_search=_web_search({"webPages": {"value": []}}),
    )

    response = service.answer(_request("latest raft release"))

    assert response.strategy_used == "simple_rag"
    assert response.fallback_from == "hybrid"


def test_agent_intent_without_chat_model_degrades_to_simple(store) -> None:
    service = AgenticRagService(store=store, classifier=StaticClassifier(COMPARISON))

    assert service.answer(_request()).strategy_used == "simple_rag"


def test_classification_is_cached_per_conversation(store) -> None:
    classifier = StaticClassifier(AGGREGATION.model_copy(update={"strategy": "simple_rag"}))
    service = AgenticRagService(store=store, classifier=classifier)

    service.answer(_request(conversation_id="c1"))
    service.answer(_request(conversation_id="c1"))
    service.answer(_request(conversation_id="c2"))

    assert classifier.calls == 2
    assert service.cache.size() == 2
    service.answer(_request(conversation_id="c1", use_rule_only=True))
    assert classifier.calls == 2


def test_low_confidence_intents_are_not_cached(store) -> None:
    classifier = StaticClassifier(Intent(type=IntentType.UNKNOWN, confidence=0.2))
    service = AgenticRagService(store=store, classifier=classifier)

    service.answer(_request(conversation_id="c1"))
    service.answer(_request(conversation_id="c1"))

    assert classifier.calls == 2
    assert service.cache.size() == 0


def test_response_fields_can_be_omitted(store) -> None:
    response = AgenticRagService(store=store).answer(
        _request("什么是Raft?", return_intent=False, return_steps=False)
    )

    assert response.intent is None
    assert response.reasoning_steps is None
    assert response.to_dict()["intent"] is None


def test_simple_failure_is_raised() -> None:
    service = AgenticRagService(store=FailingStore())

    with pytest.raises(UpstreamError):
        service.answer(_request("什么是Raft?"))


def test_enabled_tools_restrict_registry(store) -> None:
    service = AgenticRagService(store=store, web_search=_web_search({}))

    assert service.build_registry(_request()).names() == ["rag_retriever", "web_search"]
    assert service.build_registry(_request(enabled_tools=["rag"])).names() == ["rag_retriever"]


def test_stream_answer_and_indexing(store, llm) -> None:
    service = AgenticRagService(store=store, llm=llm)
    assert service.index_documents([Document(id="", content="gossip spreads state")], "kb2") != []

    references, chunks = service.stream_answer(_request("raft leader"))

    assert references
    assert "".join(chunks) == "grounded answer"


def test_dedupe_references_keeps_best_and_web_results() -> None:
    web = Document(id="", content="web")
    result = dedupe_references([doc("a", score=0.2), web, doc("a", score=0.7), Document(id="", content="web2")])

    assert [(d.id, d.score) for d in result[:1]] == [("a", 0.7)]
    assert len(result) == 3
