"""Error taxonomy shared by classifiers, executors and retrieval."""

from __future__ import annotations


class AgenticRagError(Exception):
    """Base class for every error raised by this package."""


class ToolValidationError(AgenticRagError, ValueError):
    """A tool was invoked with missing or invalid input."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"{tool_name}: {message}")


class UpstreamError(AgenticRagError):
    """A chat model, document store or web search call failed."""


class ParseError(AgenticRagError):
    """Model output could not be parsed. Never escapes its component."""


class NoDocumentsError(UpstreamError):
    """Every sub-question of a multi-hop run came back empty."""


class UnparsableOutputError(UpstreamError):
    """ReAct output carried neither an action nor a final answer."""


class HybridRetrievalError(UpstreamError):
    """Both the knowledge base and web search paths failed."""


class SynthesisError(UpstreamError):
    """Final answer synthesis failed with no partial answers to fall back on."""


class OperationCancelledError(AgenticRagError):
    """The run context was cancelled."""


class DeadlineExceededError(OperationCancelledError):
    """The run context deadline passed."""
