"""Agentic RAG package."""

from .agent.service import AgenticRagService, AgenticRequest, AgenticResponse
from .config import Settings
from .intent.hybrid import HybridIntentClassifier
from .intent.models import Intent, IntentType

__all__ = [
    "AgenticRagService",
    "AgenticRequest",
    "AgenticResponse",
    "HybridIntentClassifier",
    "Intent",
    "IntentType",
    "Settings",
]
