import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from agentic_rag.config import ClassifierConfig
from agentic_rag.context import RunContext
from agentic_rag.errors import OperationCancelledError, UpstreamError
from agentic_rag.intent.hybrid import HybridIntentClassifier
from agentic_rag.intent.llm_classifier import LLMIntentClassifier
from agentic_rag.intent.models import Intent, IntentType

from fakes import RaisingClassifier, StaticClassifier


def _intent(intent_type: IntentType, confidence: float) -> Intent:
    return Intent(type=intent_type, confidence=confidence)


def _hybrid(rule: Intent, llm) -> HybridIntentClassifier:
    return HybridIntentClassifier(
        rule_classifier=StaticClassifier(rule),
        llm_classifier=llm,
        config=ClassifierConfig(),
    )


def test_high_confidence_rule_skips_llm() -> None:
    llm = StaticClassifier(_intent(IntentType.COMPARISON, 0.99))
    intent = _hybrid(_intent(IntentType.SIMPLE_QA, 0.8), llm).classify("q")

    assert intent.type == IntentType.SIMPLE_QA
    assert intent.classification_method == "rule"
    assert llm.calls == 0


def test_low_confidence_prefers_more_confident_llm() -> None:
    llm = StaticClassifier(_intent(IntentType.COMPARISON, 0.9))
    intent = _hybrid(_intent(IntentType.SIMPLE_QA, 0.4), llm).classify("q")

    assert intent.type == IntentType.COMPARISON
    assert intent.classification_method == "hybrid_llm"


def test_unknown_rule_consults_llm_and_ties_keep_rule() -> None:
    llm = StaticClassifier(_intent(IntentType.UNKNOWN, 0.5))
    intent = _hybrid(_intent(IntentType.UNKNOWN, 0.0), llm).classify("q")

    assert intent.classification_method == "hybrid_llm"

    tie = _hybrid(_intent(IntentType.SIMPLE_QA, 0.45), StaticClassifier(_intent(IntentType.FACT_CHECK, 0.45)))
    result = tie.classify("q")
    assert result.type == IntentType.SIMPLE_QA
    assert result.classification_method == "hybrid_rule"


def test_llm_failure_returns_rule_result() -> None:
    intent = _hybrid(_intent(IntentType.SIMPLE_QA, 0.2), RaisingClassifier(UpstreamError("down"))).classify("q")

    assert intent.type == IntentType.SIMPLE_QA
    assert intent.classification_method == "hybrid_rule"


def test_cancellation_from_llm_propagates() -> None:
    classifier = _hybrid(_intent(IntentType.UNKNOWN, 0.0), RaisingClassifier(OperationCancelledError("stop")))

    with pytest.raises(OperationCancelledError):
        classifier.classify("q", ctx=RunContext())


def test_middle_band_never_calls_llm() -> None:
    llm = StaticClassifier(_intent(IntentType.COMPARISON, 0.99))
    intent = _hybrid(_intent(IntentType.PROCEDURAL, 0.6), llm).classify("q")

    assert intent.type == IntentType.PROCEDURAL
    assert intent.classification_method == "hybrid_rule"
    assert llm.calls == 0


def test_llm_toggle_and_thresholds() -> None:
    llm = StaticClassifier(_intent(IntentType.COMPARISON, 0.9))
    classifier = _hybrid(_intent(IntentType.SIMPLE_QA, 0.4), llm)

    classifier.set_use_llm(False)
    assert classifier.classify("q").classification_method == "hybrid_rule"
    assert llm.calls == 0

    classifier.set_use_llm(True)
    classifier.set_thresholds(0.3, 0.1)
    assert classifier.thresholds == (0.3, 0.1)
    assert classifier.classify("q").classification_method == "rule"

    with pytest.raises(ValueError):
        classifier.set_thresholds(0.2, 0.5)


def test_rule_only_classifier_never_uses_llm() -> None:
    classifier = HybridIntentClassifier.rule_only()

    assert classifier.use_llm is False
    assert classifier.classify("什么是RAG?").classification_method == "rule"
    assert classifier.classify("hello there").classification_method == "hybrid_rule"


def test_mistyped_llm_output_never_escapes_hybrid() -> None:
    llm = FakeListChatModel(responses=['{"type": "simple_qa", "confidence": 0.9, "time_constraint": "today"}'])
    classifier = HybridIntentClassifier(
        rule_classifier=StaticClassifier(_intent(IntentType.UNKNOWN, 0.0)),
        llm_classifier=LLMIntentClassifier(llm),
        config=ClassifierConfig(),
    )

    intent = classifier.classify("hello there")

    assert intent.type == IntentType.UNKNOWN
    assert intent.confidence == pytest.approx(0.5)
    assert intent.classification_method == "hybrid_llm"
