"""Intent data model shared by every classifier."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agentic_rag.types import utc_now

Strategy = Literal["simple_rag", "react_agent", "hybrid"]
Complexity = Literal["simple", "medium", "complex"]
ClassificationMethod = Literal["rule", "llm", "hybrid_rule", "hybrid_llm"]

MIN_STEPS = 1
MAX_STEPS = 5


class IntentType(str, Enum):
    SIMPLE_QA = "simple_qa"
    FACT_CHECK = "fact_check"
    MULTI_HOP_QA = "multi_hop_qa"
    CAUSAL_REASONING = "causal_reasoning"
    PROCEDURAL = "procedural"
    COMPARISON = "comparison"
    SUMMARIZATION = "summarization"
    AGGREGATION = "aggregation"
    TREND_ANALYSIS = "trend_analysis"
    HYBRID_SEARCH = "hybrid_search"
    REALTIME_QUERY = "realtime_query"
    CODE_GENERATION = "code_generation"
    CONTENT_CREATION = "content_creation"
    CLARIFICATION = "clarification"
    UNKNOWN = "unknown"


EXTERNAL_INTENTS = frozenset({IntentType.HYBRID_SEARCH, IntentType.REALTIME_QUERY})
DECOMPOSABLE_INTENTS = frozenset(
    {IntentType.MULTI_HOP_QA, IntentType.COMPARISON, IntentType.CAUSAL_REASONING}
)


def clamp_steps(value: int) -> int:
    return max(MIN_STEPS, min(MAX_STEPS, value))


class TimeConstraint(BaseModel):
    start_time: str | None = None
    end_time: str | None = None
    relative: str | None = None


class ScopeConstraint(BaseModel):
    knowledge_bases: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    entities: list[str] = Field(default_factory=list)


class Intent(BaseModel):
    """Classified purpose of a question.

    Validators keep the invariants every consumer relies on: confidence is
    clamped into [0, 1], estimated steps into [1, 5], and unknown enum values
    coming from model output collapse to safe defaults instead of failing.
    """

    model_config = ConfigDict(extra="ignore")

    type: IntentType = IntentType.UNKNOWN
    confidence: float = 0.0
    raw_text: str = ""
    strategy: Strategy = "simple_rag"
    need_tools: list[str] = Field(default_factory=lambda: ["rag"])
    estimated_steps: int = 1
    complexity: Complexity = "simple"
    requires_external: bool = False
    knowledge_domains: list[str] = Field(default_factory=list)
    sub_questions: list[str] = Field(default_factory=list)
    time_constraint: TimeConstraint | None = None
    scope_constraint: ScopeConstraint | None = None
    classification_method: ClassificationMethod = "rule"
    timestamp: str = Field(default_factory=utc_now)

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> Any:
        if isinstance(value, IntentType):
            return value
        try:
            return IntentType(str(value).strip().lower())
        except ValueError:
            return IntentType.UNKNOWN

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        if number != number:  # NaN
            return 0.0
        return max(0.0, min(1.0, number))

    @field_validator("estimated_steps", mode="before")
    @classmethod
    def _clamp_steps(cls, value: Any) -> int:
        try:
            return clamp_steps(int(value))
        except (TypeError, ValueError, OverflowError):
            return MIN_STEPS

    @field_validator("strategy", mode="before")
    @classmethod
    def _coerce_strategy(cls, value: Any) -> str:
        text = str(value or "").strip().lower()
        return text if text in {"simple_rag", "react_agent", "hybrid"} else "simple_rag"

    @field_validator("complexity", mode="before")
    @classmethod
    def _coerce_complexity(cls, value: Any) -> str:
        text = str(value or "").strip().lower()
        return text if text in {"simple", "medium", "complex"} else "medium"

    @field_validator("need_tools", "knowledge_domains", "sub_questions", mode="before")
    @classmethod
    def _ordered_unique(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        seen: dict[str, None] = {}
        for item in value:
            text = str(item).strip()
            if text:
                seen.setdefault(text, None)
        return list(seen)

    @property
    def needs_external_data(self) -> bool:
        return self.requires_external or self.type in EXTERNAL_INTENTS

    def with_method(self, method: ClassificationMethod) -> "Intent":
        return self.model_copy(update={"classification_method": method})
