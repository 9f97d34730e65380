"""FastAPI entrypoint for agentic chat, intent classification and retrieval."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from agentic_rag.agent.service import AgenticRagService, AgenticRequest, ChatTurn
from agentic_rag.config import Settings
from agentic_rag.errors import AgenticRagError, OperationCancelledError, ToolValidationError
from agentic_rag.types import Document

logger = logging.getLogger(__name__)


class ClassifyRequest(BaseModel):
    question: str = Field(min_length=1)
    conversation_id: str = ""
    history: list[ChatTurn] = Field(default_factory=list)
    use_rule_only: bool = False


class RetrieveRequest(BaseModel):
    question: str = Field(min_length=1)
    knowledge_name: str = Field(min_length=1)
    top_k: int = Field(default=5, ge=1, le=50)
    score: float = Field(default=0.2, ge=0.0, le=2.0)


class DocumentIn(BaseModel):
    id: str = ""
    content: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class IndexRequest(BaseModel):
    knowledge_name: str = Field(min_length=1)
    documents: list[DocumentIn] = Field(min_length=1)


def _http_error(exc: AgenticRagError) -> HTTPException:
    if isinstance(exc, ToolValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, OperationCancelledError):
        return HTTPException(status_code=504, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))


def create_app(service: AgenticRagService) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        service.start()
        try:
            yield
        finally:
            service.close()

    app = FastAPI(title="Agentic RAG", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "llm_configured": service.llm_configured,
            "web_search_enabled": service.web_search.enabled,
            "intent_cache_size": service.cache.size(),
            "tool_calls": service.tool_traces.summary(),
        }

    @app.post("/v1/agentic-chat")
    def agentic_chat(request: AgenticRequest) -> dict[str, Any]:
        try:
            return service.answer(request).to_dict()
        except AgenticRagError as exc:
            logger.warning("agentic chat failed: %s", exc)
            raise _http_error(exc) from exc

    @app.post("/v1/intent/classify")
    def classify(request: ClassifyRequest) -> dict[str, Any]:
        try:
            intent = service.classify(
                request.question,
                history=[f"{turn.role}: {turn.content}" for turn in request.history],
                conversation_id=request.conversation_id,
                use_rule_only=request.use_rule_only,
            )
        except AgenticRagError as exc:
            raise _http_error(exc) from exc
        return intent.model_dump(mode="json")

    @app.post("/v1/retrieve")
    def retrieve(request: RetrieveRequest) -> dict[str, Any]:
        try:
            documents = service.retrieve(
                AgenticRequest(
                    question=request.question,
                    knowledge_name=request.knowledge_name,
                    top_k=request.top_k,
                    score=request.score,
                )
            )
        except AgenticRagError as exc:
            raise _http_error(exc) from exc
        return {"items": [asdict(document) for document in documents]}

    @app.post("/v1/documents")
    def index_documents(request: IndexRequest) -> dict[str, Any]:
        documents = [
            Document(id=item.id, content=item.content, metadata=dict(item.metadata))
            for item in request.documents
        ]
        try:
            ids = service.index_documents(documents, request.knowledge_name)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"indexed": len(ids), "ids": ids}

    return app


logging.basicConfig(
    level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

app = create_app(AgenticRagService.from_settings(Settings.from_env()))
