import pytest

from agentic_rag.agent.multi_hop import MultiHopExecutor, build_synthesis_context
from agentic_rag.agent.registry import ToolRegistry
from agentic_rag.config import AgentConfig
from agentic_rag.errors import NoDocumentsError, SynthesisError
from agentic_rag.intent.models import Intent, IntentType
from agentic_rag.types import SubQuestionResult

from fakes import FakeRagTool, ScriptedChatModel, doc

INTENT = Intent(
    type=IntentType.COMPARISON,
    strategy="react_agent",
    sub_questions=["Elasticsearch 的性能特点", "Milvus 的性能特点"],
)


def _run(llm, registry, **config):
    executor = MultiHopExecutor(llm, registry, config=AgentConfig(**config))
    return executor.run(
        "Elasticsearch 和 Milvus 哪个性能更好", INTENT, knowledge_name="kb", top_k=5, score=0.2
    )


def test_references_are_merged_without_duplicate_ids() -> None:
    tool = FakeRagTool(
        {
            "Elasticsearch 的性能特点": [doc("shared", "shared doc", 0.4), doc("es", "es doc", 0.7)],
            "Milvus 的性能特点": [doc("shared", "shared doc", 0.9), doc("mv", "milvus doc", 0.5)],
        }
    )
    llm = ScriptedChatModel(["Milvus is faster for vectors."])
    result = _run(llm, ToolRegistry([tool]))

    ids = [document.id for document in result.all_references]
    assert ids == ["shared", "es", "mv"]
    assert result.all_references[0].score == pytest.approx(0.9)
    assert result.final_answer == "Milvus is faster for vectors."
    assert tool.queries == ["Elasticsearch 的性能特点", "Milvus 的性能特点"]


def test_trace_shape() -> None:
    tool = FakeRagTool({"Milvus 的性能特点": [doc("mv", score=0.5)]})
    result = _run(ScriptedChatModel(["answer"]), ToolRegistry([tool]))
    steps = result.reasoning_steps

    assert steps[0].content == "Decomposing question into 2 sub-questions (source: intent)"
    assert steps[1].content == "Analyzing sub-question 1/2: 'Elasticsearch 的性能特点'"
    assert steps[2].kind == "action"
    assert steps[2].content == "rag_retriever"
    assert steps[2].action_input == {
        "query": "Elasticsearch 的性能特点",
        "knowledge_name": "kb",
        "top_k": 5,
        "score": 0.2,
    }
    assert steps[3].content == "Found 0 documents for sub-question 1"
    assert steps[6].content == "Found 1 documents for sub-question 2"
    assert steps[-1].kind == "final_answer"
    assert steps[-1].content == "Synthesized answer from 2 sub-questions"
    assert [step.step for step in steps] == list(range(1, len(steps) + 1))


def test_all_empty_raises_no_documents() -> None:
    with pytest.raises(NoDocumentsError):
        _run(ScriptedChatModel([]), ToolRegistry([FakeRagTool()]))


def test_missing_tool_raises_no_documents() -> None:
    with pytest.raises(NoDocumentsError):
        _run(ScriptedChatModel([]), ToolRegistry())


def test_failed_sub_question_is_recorded_and_skipped() -> None:
    def results(query: str):
        if query.startswith("Elasticsearch"):
            raise RuntimeError("es down")
        return [doc("mv", score=0.5)]

    result = _run(ScriptedChatModel(["answer"]), ToolRegistry([FakeRagTool(results)]))

    assert result.reasoning_steps[3].content == "Found 0 documents for sub-question 1 (error: es down)"
    assert [sub.index for sub in result.sub_results] == [2]


def test_synthesis_failure_without_sub_answers_raises() -> None:
    tool = FakeRagTool({"Milvus 的性能特点": [doc("mv")]})

    with pytest.raises(SynthesisError):
        _run(ScriptedChatModel([RuntimeError("down")]), ToolRegistry([tool]))


def test_synthesis_failure_joins_sub_answers() -> None:
    tool = FakeRagTool(
        {"Elasticsearch 的性能特点": [doc("es")], "Milvus 的性能特点": [doc("mv")]}
    )
    llm = ScriptedChatModel(["ES is fast.", "Milvus is fast.", RuntimeError("down")])

    result = _run(llm, ToolRegistry([tool]), answer_sub_questions=True)

    assert result.final_answer == "ES is fast.\n\nMilvus is fast."
    assert [sub.answer for sub in result.sub_results] == ["ES is fast.", "Milvus is fast."]


def test_sub_questions_are_capped() -> None:
    intent = INTENT.model_copy(update={"sub_questions": ["a", "b", "c"]})
    tool = FakeRagTool(lambda query: [doc(query)])
    executor = MultiHopExecutor(ScriptedChatModel(["ok"]), ToolRegistry([tool]), config=AgentConfig(max_sub_questions=2))

    result = executor.run("q", intent, knowledge_name="kb", top_k=5, score=0.2)

    assert tool.queries == ["a", "b"]
    assert len(result.sub_results) == 2


def test_synthesis_context_truncates_documents() -> None:
    context = build_synthesis_context(
        [SubQuestionResult(sub_question="q1", documents=[doc("a", "x" * 20)], index=1)], doc_chars=5
    )

    assert context == "Sub-question 1: q1\nDocuments: xxxxx..."
