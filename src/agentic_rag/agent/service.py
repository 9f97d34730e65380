"""Strategy selection: classify a question, then answer it the cheapest adequate way."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from pydantic import BaseModel, Field

from agentic_rag.agent.answer import AnswerGenerator
from agentic_rag.agent.multi_hop import MultiHopExecutor
from agentic_rag.agent.react import ReactExecutor
from agentic_rag.agent.registry import ToolRegistry
from agentic_rag.agent.tools import WebSearchTool, register_builtin_tools
from agentic_rag.config import Settings
from agentic_rag.context import RunContext
from agentic_rag.errors import AgenticRagError, OperationCancelledError, ToolValidationError
from agentic_rag.intent.cache import IntentCache, SweepHandle
from agentic_rag.intent.hybrid import HybridIntentClassifier
from agentic_rag.intent.models import DECOMPOSABLE_INTENTS, Intent
from agentic_rag.llm import create_chat_model
from agentic_rag.obs.tracing import Timer, ToolTraceLog
from agentic_rag.retrieval.hybrid import HybridRetriever, web_search_allowed
from agentic_rag.retrieval.orchestrator import RetrievalOrchestrator, RetrievalRequest
from agentic_rag.retrieval.rerank import Reranker
from agentic_rag.retrieval.store import DocumentStore, InMemoryDocumentStore
from agentic_rag.types import Document, ReasoningStep, ReasoningTrace

logger = logging.getLogger(__name__)

StrategyName = Literal["simple_rag", "react_agent", "multi_hop", "hybrid"]


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class AgenticRequest(BaseModel):
    question: str = Field(min_length=1)
    knowledge_name: str = Field(min_length=1)
    top_k: int = Field(default=5, ge=1, le=50)
    score: float = Field(default=0.2, ge=0.0, le=2.0)
    conversation_id: str = ""
    history: list[ChatTurn] = Field(default_factory=list)
    enabled_tools: list[str] = Field(default_factory=list)
    max_iterations: int | None = Field(default=None, ge=1, le=20)
    use_rule_only: bool = False
    return_intent: bool = True
    return_steps: bool = True


@dataclass(slots=True)
class AgenticResponse:
    answer: str
    references: list[Document]
    strategy_used: StrategyName
    execution_time_ms: float
    fallback_from: StrategyName | None = None
    intent: Intent | None = None
    reasoning_steps: list[ReasoningStep] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "references": [asdict(document) for document in self.references],
            "strategy_used": self.strategy_used,
            "fallback_from": self.fallback_from,
            "intent": self.intent.model_dump(mode="json") if self.intent else None,
            "reasoning_steps": (
                [asdict(step) for step in self.reasoning_steps]
                if self.reasoning_steps is not None
                else None
            ),
            "execution_time_ms": self.execution_time_ms,
        }


@dataclass(slots=True)
class _Outcome:
    answer: str
    references: list[Document]
    steps: list[ReasoningStep] = field(default_factory=list)


class AgenticRagService:
    """Process-wide engine built once at startup.

    Holds the chat model, classifier, intent cache, retrieval orchestrator,
    answer generator and web search tool. Tools are bound per request so
    that knowledge base and retrieval defaults follow the request.
    """

    def __init__(
        self,
        *,
        store: DocumentStore,
        llm: Any | None = None,
        settings: Settings | None = None,
        reranker: Reranker | None = None,
        classifier: HybridIntentClassifier | None = None,
        cache: IntentCache | None = None,
        web_search: WebSearchTool | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store
        self.llm = llm
        self.orchestrator = RetrievalOrchestrator(
            store, llm=llm, reranker=reranker, config=self.settings.retrieval
        )
        if classifier is not None:
            self.classifier = classifier
        elif llm is not None:
            self.classifier = HybridIntentClassifier.from_llm(llm, self.settings.classifier)
        else:
            self.classifier = HybridIntentClassifier.rule_only()
        self.rule_classifier = HybridIntentClassifier.rule_only()
        self.cache = cache or IntentCache(self.settings.cache)
        self.web_search = web_search or WebSearchTool(self.settings.web_search)
        self.answer_generator = AnswerGenerator(llm)
        self.tool_traces = ToolTraceLog()
        self._sweep: SweepHandle | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings, *, store: DocumentStore | None = None
    ) -> "AgenticRagService":
        llm = create_chat_model(settings.llm)
        if llm is None:
            logger.info("no chat model configured, using rule-only classification")
        return cls(store=store or InMemoryDocumentStore(), llm=llm, settings=settings)

    @property
    def llm_configured(self) -> bool:
        return self.llm is not None

    def start(self) -> None:
        if self._sweep is None:
            self._sweep = self.cache.start()

    def close(self) -> None:
        if self._sweep is not None:
            self._sweep.stop()
            self._sweep = None

    def classify(
        self,
        question: str,
        *,
        history: Sequence[str] | None = None,
        conversation_id: str = "",
        use_rule_only: bool = False,
        ctx: RunContext | None = None,
    ) -> Intent:
        """Cached classification; rule-only requests bypass the cache."""
        ctx = ctx or RunContext.background()
        if use_rule_only:
            return self.rule_classifier.classify(question, history=history, ctx=ctx)

        cached = self.cache.get(conversation_id, question)
        if cached is not None:
            logger.debug("intent cache hit for %r", question[:50])
            return cached

        intent = self.classifier.classify(question, history=history, ctx=ctx)
        if intent.confidence >= self.cache.config.min_confidence:
            self.cache.set(conversation_id, question, intent)
        return intent

    def answer(
        self, request: AgenticRequest, ctx: RunContext | None = None
    ) -> AgenticResponse:
        ctx = ctx or RunContext(timeout_seconds=self.settings.agent.request_timeout_seconds)
        with Timer() as timer:
            intent = self.classify(
                request.question,
                history=[f"{turn.role}: {turn.content}" for turn in request.history],
                conversation_id=request.conversation_id,
                use_rule_only=request.use_rule_only,
                ctx=ctx,
            )
            registry = self.build_registry(request)
            strategy = self.select_strategy(intent, request, registry)
            logger.info(
                "intent=%s confidence=%.2f method=%s strategy=%s",
                intent.type.value,
                intent.confidence,
                intent.classification_method,
                strategy,
            )

            fallback_from: StrategyName | None = None
            try:
                outcome = self._run_strategy(strategy, request, intent, registry, ctx)
            except (ToolValidationError, OperationCancelledError):
                raise
            except AgenticRagError as exc:
                if strategy == "simple_rag":
                    raise
                logger.warning("%s strategy failed, falling back to simple_rag: %s", strategy, exc)
                fallback_from = strategy
                outcome = self._simple(request, ctx)

            if outcome is None:
                logger.info("%s strategy found nothing, falling back to simple_rag", strategy)
                fallback_from = strategy
                outcome = self._simple(request, ctx)

        used: StrategyName = "simple_rag" if fallback_from else strategy
        logger.info("answered with %s in %.1fms", used, timer.elapsed_ms)
        return AgenticResponse(
            answer=outcome.answer,
            references=dedupe_references(outcome.references),
            strategy_used=used,
            execution_time_ms=timer.elapsed_ms,
            fallback_from=fallback_from,
            intent=intent if request.return_intent else None,
            reasoning_steps=outcome.steps if request.return_steps else None,
        )

    def stream_answer(
        self, request: AgenticRequest, ctx: RunContext | None = None
    ) -> tuple[list[Document], Iterator[str]]:
        """Simple-RAG references plus an incremental answer."""
        ctx = ctx or RunContext(timeout_seconds=self.settings.agent.request_timeout_seconds)
        documents = self.retrieve(request, ctx)
        chunks = self.answer_generator.stream(
            request.question, documents, history=_history_messages(request.history), ctx=ctx
        )
        return documents, chunks

    def retrieve(
        self, request: AgenticRequest, ctx: RunContext | None = None
    ) -> list[Document]:
        return self.orchestrator.retrieve(
            RetrievalRequest(
                query=request.question,
                knowledge_name=request.knowledge_name,
                top_k=request.top_k,
                score=request.score,
            ),
            ctx,
        )

    def index_documents(self, documents: Sequence[Document], knowledge_name: str) -> list[str]:
        add_documents = getattr(self.store, "add_documents", None)
        if add_documents is None:
            raise ValueError(f"{type(self.store).__name__} does not support indexing")
        ids = add_documents(documents, knowledge_name)
        logger.info("indexed %d documents into %s", len(ids), knowledge_name)
        return ids

    def build_registry(self, request: AgenticRequest) -> ToolRegistry:
        registry = ToolRegistry()
        registry.set_observer(self.tool_traces)
        register_builtin_tools(
            registry,
            self.orchestrator,
            knowledge_name=request.knowledge_name,
            top_k=request.top_k,
            score=request.score,
            web_search=self.web_search,
        )
        return registry.subset(request.enabled_tools)

    def select_strategy(
        self, intent: Intent, request: AgenticRequest, registry: ToolRegistry
    ) -> StrategyName:
        if intent.strategy == "react_agent":
            if self.llm is None:
                return "simple_rag"
            if intent.type in DECOMPOSABLE_INTENTS or intent.sub_questions:
                return "multi_hop"
            return "react_agent"
        if intent.strategy == "hybrid":
            if web_search_allowed(intent, registry, request.enabled_tools):
                return "hybrid"
            return "simple_rag"
        return "simple_rag"

    def _run_strategy(
        self,
        strategy: StrategyName,
        request: AgenticRequest,
        intent: Intent,
        registry: ToolRegistry,
        ctx: RunContext,
    ) -> _Outcome | None:
        if strategy == "multi_hop":
            multi_hop = MultiHopExecutor(self.llm, registry, config=self.settings.agent)
            result = multi_hop.run(
                request.question,
                intent,
                knowledge_name=request.knowledge_name,
                top_k=request.top_k,
                score=request.score,
                ctx=ctx,
            )
            return _Outcome(result.final_answer, result.all_references, result.reasoning_steps)
        if strategy == "react_agent":
            react = ReactExecutor(self.llm, registry, config=self.settings.agent)
            result = react.run(request.question, ctx=ctx, max_iterations=request.max_iterations)
            return _Outcome(result.answer, result.references, result.reasoning_steps)
        if strategy == "hybrid":
            return self._hybrid(request, intent, registry, ctx)
        return self._simple(request, ctx)

    def _simple(self, request: AgenticRequest, ctx: RunContext) -> _Outcome:
        documents = self.retrieve(request, ctx)
        answer = self.answer_generator.generate(
            request.question, documents, history=_history_messages(request.history), ctx=ctx
        )
        return _Outcome(answer, documents)

    def _hybrid(
        self,
        request: AgenticRequest,
        intent: Intent,
        registry: ToolRegistry,
        ctx: RunContext,
    ) -> _Outcome | None:
        trace = ReasoningTrace()
        trace.add("thought", "Question needs external data; searching knowledge base and web")
        trace.add("action", "rag_retriever+web_search", action_input={"query": request.question})
        documents = HybridRetriever(registry).retrieve(
            request.question, intent, top_k=request.top_k, ctx=ctx
        )
        if not documents:
            return None
        trace.add("observation", f"Merged {len(documents)} documents")
        answer = self.answer_generator.generate(
            request.question, documents, history=_history_messages(request.history), ctx=ctx
        )
        trace.add("final_answer", answer)
        return _Outcome(answer, documents, trace.steps)


def dedupe_references(documents: Sequence[Document]) -> list[Document]:
    """Keep one copy per id (the best scoring) in first-seen position.

    Documents without an id, such as web results, are kept as-is.
    """
    positions: dict[str, int] = {}
    result: list[Document] = []
    for document in documents:
        if not document.id:
            result.append(document)
            continue
        position = positions.get(document.id)
        if position is None:
            positions[document.id] = len(result)
            result.append(document)
        elif document.score > result[position].score:
            result[position] = document
    return result


def _history_messages(turns: Sequence[ChatTurn]) -> list[BaseMessage]:
    return [
        HumanMessage(content=turn.content) if turn.role == "user" else AIMessage(content=turn.content)
        for turn in turns
    ]
