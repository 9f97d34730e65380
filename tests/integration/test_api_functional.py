from fastapi.testclient import TestClient

from agentic_rag.agent.service import AgenticRagService
from agentic_rag.api.main import create_app
from agentic_rag.errors import OperationCancelledError, ToolValidationError
from agentic_rag.retrieval.store import InMemoryDocumentStore

from fakes import FailingStore, RaisingClassifier


def _client(service: AgenticRagService) -> TestClient:
    return TestClient(create_app(service))


def test_index_then_chat_classify_and_retrieve() -> None:
    service = AgenticRagService(store=InMemoryDocumentStore())

    with _client(service) as client:
        index_resp = client.post(
            "/v1/documents",
            json={
                "knowledge_name": "policies",
                "documents": [
                    {"id": "enc", "content": "Employees must encrypt customer data at rest."},
                    {"content": "Laptops are replaced every three years."},
                ],
            },
        )
        assert index_resp.status_code == 200
        assert index_resp.json()["indexed"] == 2
        assert index_resp.json()["ids"][0] == "enc"

        chat_resp = client.post(
            "/v1/agentic-chat",
            json={
                "question": "what is the rule to encrypt customer data",
                "knowledge_name": "policies",
                "score": 0.0,
                "conversation_id": "c1",
            },
        )
        assert chat_resp.status_code == 200
        payload = chat_resp.json()
        assert payload["strategy_used"] == "simple_rag"
        assert payload["fallback_from"] is None
        assert payload["references"][0]["id"] == "enc"
        assert payload["intent"]["classification_method"] in {"rule", "hybrid_rule"}
        assert isinstance(payload["reasoning_steps"], list)

        classify_resp = client.post("/v1/intent/classify", json={"question": "hello there"})
        assert classify_resp.status_code == 200
        assert classify_resp.json()["type"] == "unknown"
        assert classify_resp.json()["confidence"] == 0.0

        retrieve_resp = client.post(
            "/v1/retrieve",
            json={"question": "encrypt customer data", "knowledge_name": "policies", "score": 0.0},
        )
        assert retrieve_resp.status_code == 200
        assert retrieve_resp.json()["items"][0]["id"] == "enc"

        health = client.get("/health").json()
        assert health["status"] == "ok"
        assert health["llm_configured"] is False
        assert health["tool_calls"]["total_calls"] == 0


def test_request_validation() -> None:
    with _client(AgenticRagService(store=InMemoryDocumentStore())) as client:
        assert client.post("/v1/agentic-chat", json={"question": "", "knowledge_name": "kb"}).status_code == 422
        assert client.post("/v1/agentic-chat", json={"question": "q", "knowledge_name": "kb", "top_k": 0}).status_code == 422


def test_error_mapping() -> None:
    upstream = AgenticRagService(store=FailingStore())
    with _client(upstream) as client:
        resp = client.post("/v1/agentic-chat", json={"question": "什么是Raft?", "knowledge_name": "kb"})
        assert resp.status_code == 502

    cancelled = AgenticRagService(
        store=InMemoryDocumentStore(), classifier=RaisingClassifier(OperationCancelledError("deadline"))
    )
    with _client(cancelled) as client:
        resp = client.post("/v1/agentic-chat", json={"question": "q", "knowledge_name": "kb"})
        assert resp.status_code == 504

    invalid = AgenticRagService(
        store=InMemoryDocumentStore(), classifier=RaisingClassifier(ToolValidationError("rag_retriever", "bad"))
    )
    with _client(invalid) as client:
        resp = client.post("/v1/intent/classify", json={"question": "q"})
        assert resp.status_code == 400
