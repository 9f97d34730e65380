"""Configuration models for the agentic RAG engine."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field, model_validator


class ClassifierConfig(BaseModel):
    """Confidence thresholds for the rule-first, LLM-fallback classifier."""

    high_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    low_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    use_llm: bool = True

    @model_validator(mode="after")
    def _check_order(self) -> "ClassifierConfig":
        if self.low_confidence > self.high_confidence:
            raise ValueError("low_confidence must not exceed high_confidence")
        return self


class IntentCacheConfig(BaseModel):
    ttl_seconds: float = Field(default=300.0, gt=0.0)
    max_size: int = Field(default=1000, ge=1)
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class RetrievalConfig(BaseModel):
    """Configures rewrite rounds and dual-field search."""

    rewrite_rounds: int = Field(default=3, ge=1)
    content_vector_field: str = "content_vector"
    qa_vector_field: str = "qa_content_vector"
    default_top_k: int = Field(default=5, ge=1)
    default_score: float = Field(default=0.2, ge=0.0, le=2.0)


class AgentConfig(BaseModel):
    """Configures ReAct and multi-hop execution bounds."""

    max_iterations: int = Field(default=5, ge=1)
    max_sub_questions: int = Field(default=5, ge=1)
    synthesis_doc_chars: int = Field(default=500, ge=1)
    observation_snippet_chars: int = Field(default=200, ge=1)
    observation_snippets: int = Field(default=3, ge=1)
    answer_sub_questions: bool = False
    request_timeout_seconds: float | None = Field(default=120.0, gt=0.0)


class WebSearchConfig(BaseModel):
    enabled: bool = False
    api_key: str = ""
    endpoint: str = "https://api.bing.microsoft.com/v7.0/search"
    max_results: int = Field(default=5, ge=1, le=50)
    timeout_seconds: float = Field(default=10.0, gt=0.0)

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.endpoint)


class LLMConfig(BaseModel):
    api_key: str = ""
    base_url: str | None = None
    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    timeout_seconds: float = Field(default=60.0, gt=0.0)
    max_retries: int = Field(default=2, ge=0)


class Settings(BaseModel):
    """Aggregate settings built once at startup."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    cache: IntentCacheConfig = Field(default_factory=IntentCacheConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    web_search: WebSearchConfig = Field(default_factory=WebSearchConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            llm=LLMConfig(
                api_key=os.getenv("OPENAI_API_KEY", "").strip(),
                base_url=os.getenv("OPENAI_BASE_URL") or None,
                model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            ),
            classifier=ClassifierConfig(
                use_llm=_env_bool("AGENTIC_CLASSIFIER_USE_LLM", True),
            ),
            agent=AgentConfig(
                max_iterations=int(os.getenv("AGENTIC_MAX_ITERATIONS", "5")),
                max_sub_questions=int(os.getenv("AGENTIC_MAX_SUB_QUESTIONS", "5")),
            ),
            web_search=WebSearchConfig(
                enabled=_env_bool("WEB_SEARCH_ENABLED", False),
                api_key=os.getenv("WEB_SEARCH_API_KEY", "").strip(),
                endpoint=os.getenv(
                    "WEB_SEARCH_ENDPOINT", "https://api.bing.microsoft.com/v7.0/search"
                ),
            ),
        )


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}
