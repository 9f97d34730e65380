import pytest

from agentic_rag.retrieval.store import InMemoryDocumentStore
from agentic_rag.types import Document

from fakes import HandlerChatModel

CORPUS = [
    Document(id="raft", content="Raft elects a leader and replicates a log."),
    Document(id="paxos", content="Paxos reaches consensus with proposers and acceptors."),
]


@pytest.fixture()
def store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    store.add_documents(CORPUS, "kb")
    return store


def _reply(messages) -> str:
    system = str(messages[0].content)
    last = str(messages[-1].content)
    if "rag for data retrieval" in system:
        return last.split(": ", 1)[1]
    if "synthesizing answers" in system:
        return "synthesized answer"
    if "ReAct" in system:
        if last.startswith("Observation:"):
            return "Thought: enough\nFinal Answer: react answer"
        return 'Thought: look it up\nAction: rag_retriever\nAction Input: {"query": "raft"}'
    if "accurately answer user questions" in system:
        return "grounded answer"
    raise AssertionError(f"unexpected prompt: {system[:80]}")


@pytest.fixture()
def llm() -> HandlerChatModel:
    return HandlerChatModel(_reply)
