"""Rule-first intent classification with an LLM fallback."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

from agentic_rag.config import ClassifierConfig
from agentic_rag.context import RunContext
from agentic_rag.errors import AgenticRagError, OperationCancelledError
from agentic_rag.intent.llm_classifier import LLMIntentClassifier
from agentic_rag.intent.models import Intent, IntentType
from agentic_rag.intent.rules import RuleBasedClassifier
from agentic_rag.obs.tracing import Timer

logger = logging.getLogger(__name__)


class IntentClassifier(Protocol):
    def classify(
        self,
        text: str,
        *,
        history: Sequence[str] | None = None,
        ctx: RunContext | None = None,
    ) -> Intent: ...


class HybridIntentClassifier:
    """Composes the rule and LLM classifiers under confidence thresholds.

    Branch order:

    1. rule confidence >= high: rule result, method ``rule``.
    2. rule confidence < low or rule type unknown, with the LLM enabled:
       the LLM result when it is strictly more confident (``hybrid_llm``),
       otherwise the rule result (``hybrid_rule``). An LLM failure also
       yields the rule result.
    3. anything else: rule result, method ``hybrid_rule``.
    """

    def __init__(
        self,
        *,
        rule_classifier: IntentClassifier | None = None,
        llm_classifier: IntentClassifier | None = None,
        config: ClassifierConfig | None = None,
    ) -> None:
        self.config = config or ClassifierConfig()
        self.rule_classifier = rule_classifier or RuleBasedClassifier()
        self.llm_classifier = llm_classifier
        self._high = self.config.high_confidence
        self._low = self.config.low_confidence
        self._use_llm = self.config.use_llm and llm_classifier is not None

    @classmethod
    def from_llm(cls, llm: Any, config: ClassifierConfig | None = None) -> "HybridIntentClassifier":
        return cls(llm_classifier=LLMIntentClassifier(llm), config=config)

    @classmethod
    def rule_only(cls, rule_classifier: IntentClassifier | None = None) -> "HybridIntentClassifier":
        return cls(
            rule_classifier=rule_classifier,
            config=ClassifierConfig(use_llm=False),
        )

    @property
    def thresholds(self) -> tuple[float, float]:
        return self._high, self._low

    @property
    def use_llm(self) -> bool:
        return self._use_llm

    def set_thresholds(self, high: float, low: float) -> None:
        if not 0.0 <= low <= high <= 1.0:
            raise ValueError("thresholds must satisfy 0 <= low <= high <= 1")
        self._high = high
        self._low = low

    def set_use_llm(self, enabled: bool) -> None:
        self._use_llm = enabled and self.llm_classifier is not None

    def classify(
        self,
        text: str,
        *,
        history: Sequence[str] | None = None,
        ctx: RunContext | None = None,
    ) -> Intent:
        ctx = ctx or RunContext.background()
        with Timer() as timer:
            intent = self._classify(text, history, ctx)
        logger.debug(
            "classified %r as %s via %s in %.1fms",
            text[:50],
            intent.type.value,
            intent.classification_method,
            timer.elapsed_ms,
        )
        return intent

    def classify_batch(
        self, texts: Sequence[str], *, ctx: RunContext | None = None
    ) -> list[Intent]:
        return [self.classify(text, ctx=ctx) for text in texts]

    def _classify(
        self, text: str, history: Sequence[str] | None, ctx: RunContext
    ) -> Intent:
        rule_result = self.rule_classifier.classify(text, history=history, ctx=ctx)
        logger.debug(
            "rule classification: type=%s confidence=%.2f",
            rule_result.type.value,
            rule_result.confidence,
        )

        if rule_result.confidence >= self._high:
            logger.info("high confidence rule match (%.2f), skipping LLM", rule_result.confidence)
            return rule_result.with_method("rule")

        low_or_unknown = (
            rule_result.confidence < self._low or rule_result.type == IntentType.UNKNOWN
        )
        if self._use_llm and low_or_unknown and self.llm_classifier is not None:
            logger.info(
                "low confidence (%.2f) or unknown intent, consulting LLM",
                rule_result.confidence,
            )
            try:
                llm_result = self.llm_classifier.classify(text, history=history, ctx=ctx)
            except OperationCancelledError:
                raise
            except AgenticRagError as exc:
                logger.warning("LLM classification failed, using rule result: %s", exc)
                return rule_result.with_method("hybrid_rule")

            if llm_result.confidence > rule_result.confidence:
                logger.info(
                    "LLM result preferred (%.2f > %.2f)",
                    llm_result.confidence,
                    rule_result.confidence,
                )
                return llm_result.with_method("hybrid_llm")

        return rule_result.with_method("hybrid_rule")
