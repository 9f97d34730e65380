"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

StepKind = Literal["thought", "action", "observation", "final_answer"]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class Document:
    """A retrieved document. Identity is owned by the store, never mutated here."""

    id: str
    content: str
    score: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ReasoningStep:
    """One entry of a reasoning trace."""

    step: int
    kind: StepKind
    content: str
    action_input: dict[str, Any] | None = None
    timestamp: str = field(default_factory=utc_now)


class ReasoningTrace:
    """Append-only reasoning trace with monotonically increasing step numbers."""

    def __init__(self) -> None:
        self._steps: list[ReasoningStep] = []

    def add(
        self,
        kind: StepKind,
        content: str,
        *,
        action_input: dict[str, Any] | None = None,
    ) -> ReasoningStep:
        step = ReasoningStep(
            step=len(self._steps) + 1,
            kind=kind,
            content=content,
            action_input=action_input,
        )
        self._steps.append(step)
        return step

    @property
    def steps(self) -> list[ReasoningStep]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)


@dataclass(slots=True)
class ToolOutput:
    """Uniform tool result: retrieved documents plus free-form data."""

    documents: list[Document] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.documents)


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
    error: str | None = None


@dataclass(slots=True)
class DecomposeResult:
    sub_questions: list[str]
    source: Literal["intent", "llm", "original"]


@dataclass(slots=True)
class SubQuestionResult:
    sub_question: str
    documents: list[Document]
    index: int
    answer: str = ""


@dataclass(slots=True)
class MultiHopResult:
    final_answer: str
    all_references: list[Document]
    sub_results: list[SubQuestionResult]
    reasoning_steps: list[ReasoningStep]


@dataclass(slots=True)
class ReactResult:
    answer: str
    references: list[Document]
    reasoning_steps: list[ReasoningStep]
    iterations: int = 0
