import pytest

from agentic_rag.context import RunContext
from agentic_rag.errors import OperationCancelledError
from agentic_rag.intent.models import IntentType
from agentic_rag.intent.rules import (
    RuleBasedClassifier,
    estimate_complexity,
    extract_domains,
    fold_full_width,
    normalize_text,
    requires_external,
)


@pytest.fixture()
def classifier() -> RuleBasedClassifier:
    return RuleBasedClassifier()


def test_definition_question_is_high_confidence_simple_qa(classifier: RuleBasedClassifier) -> None:
    intent = classifier.classify("什么是RAG?")

    assert intent.type == IntentType.SIMPLE_QA
    assert intent.confidence >= 0.7
    assert intent.strategy == "simple_rag"
    assert intent.classification_method == "rule"
    assert intent.complexity == "simple"


def test_full_width_question_mark_is_folded(classifier: RuleBasedClassifier) -> None:
    half = classifier.classify("什么是RAG?")
    full = classifier.classify("什么是RAG？")

    assert full.type == half.type
    assert full.confidence == pytest.approx(half.confidence)


def test_no_signal_yields_unknown_with_zero_confidence(classifier: RuleBasedClassifier) -> None:
    intent = classifier.classify("hello there")

    assert intent.type == IntentType.UNKNOWN
    assert intent.confidence == 0.0
    assert intent.strategy == "simple_rag"
    assert intent.need_tools == ["rag"]
    assert intent.estimated_steps == 1
    assert intent.complexity == "simple"


def test_realtime_question_routes_to_hybrid(classifier: RuleBasedClassifier) -> None:
    intent = classifier.classify("今天的实时数据怎么样")

    assert intent.type == IntentType.REALTIME_QUERY
    assert intent.strategy == "hybrid"
    assert intent.requires_external is True
    assert intent.needs_external_data is True
    assert "web_search" in intent.need_tools


def test_comparison_question_uses_agent_strategy(classifier: RuleBasedClassifier) -> None:
    intent = classifier.classify("MySQL vs PostgreSQL 哪个更好")

    assert intent.type == IntentType.COMPARISON
    assert intent.strategy == "react_agent"
    assert 0.3 <= intent.confidence < 0.7


def test_slots_fill_time_and_scope_constraints(classifier: RuleBasedClassifier) -> None:
    intent = classifier.classify("今天 Elon Musk 发布了什么")

    assert intent.time_constraint is not None
    assert intent.time_constraint.relative == "今天"
    assert intent.scope_constraint is not None
    assert "Elon Musk" in intent.scope_constraint.entities


def test_classification_is_deterministic(classifier: RuleBasedClassifier) -> None:
    texts = ["什么是RAG?", "MySQL vs PostgreSQL 哪个更好", "hello there", "为什么数据库索引会导致写入变慢"]
    first = classifier.classify_batch(texts)
    second = classifier.classify_batch(texts)

    for a, b in zip(first, second):
        assert a.type == b.type
        assert a.confidence == b.confidence
        assert a.strategy == b.strategy


@pytest.mark.parametrize(
    "text",
    ["", "   ", "?", "为什么为什么为什么为什么", "compare a vs b versus c 对比 比较 区别 差异 优缺点 哪个更好" * 5],
)
def test_scores_and_steps_stay_in_bounds(classifier: RuleBasedClassifier, text: str) -> None:
    intent = classifier.classify(text)

    assert 0.0 <= intent.confidence <= 1.0
    assert 1 <= intent.estimated_steps <= 5
    for score in classifier.score(normalize_text(text)).values():
        assert 0.0 <= score <= 1.0


def test_cancelled_context_is_checked(classifier: RuleBasedClassifier) -> None:
    ctx = RunContext()
    ctx.cancel()

    with pytest.raises(OperationCancelledError):
        classifier.classify("什么是RAG?", ctx=ctx)


def test_normalize_text_collapses_whitespace() -> None:
    assert normalize_text("  什么是\t\n RAG？ ") == "什么是 RAG?"
    assert fold_full_width("ＡＢＣ　１") == "ABC 1"


@pytest.mark.parametrize(
    ("text", "steps", "expected"),
    [
        ("short", 1, "simple"),
        ("short", 3, "medium"),
        ("short", 5, "complex"),
        ("x" * 101, 1, "complex"),
        ("x" * 40, 2, "medium"),
    ],
)
def test_estimate_complexity(text: str, steps: int, expected: str) -> None:
    assert estimate_complexity(text, steps) == expected


def test_external_keywords_and_domains() -> None:
    assert requires_external(IntentType.SIMPLE_QA, "what is the latest release") is True
    assert requires_external(IntentType.SIMPLE_QA, "what is a vector") is False
    assert requires_external(IntentType.HYBRID_SEARCH, "anything") is True
    assert extract_domains("如何用 Docker 部署 SQL 数据库") == ["database", "devops"]
