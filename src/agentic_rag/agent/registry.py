"""Tool contract and name-keyed registry."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from time import perf_counter
from typing import Any, ClassVar

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ValidationError

from agentic_rag.context import RunContext
from agentic_rag.errors import ToolValidationError
from agentic_rag.obs.tracing import preview
from agentic_rag.types import ToolOutput, ToolTrace

RAG_TOOL_NAME = "rag_retriever"
WEB_SEARCH_TOOL_NAME = "web_search"

# Short names used by intents and request payloads.
TOOL_ALIASES = {"rag": RAG_TOOL_NAME}


def canonical_tool_name(name: str) -> str:
    cleaned = name.strip()
    return TOOL_ALIASES.get(cleaned, cleaned)


class Tool(ABC):
    """An invocable capability.

    `description` is pasted verbatim into model prompts and `input_example`
    documents the JSON shape the model is expected to send.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    args_schema: ClassVar[type[BaseModel]]
    input_example: ClassVar[dict[str, Any]] = {}

    def validate(self, payload: dict[str, Any]) -> BaseModel:
        try:
            return self.args_schema.model_validate(payload)
        except ValidationError as exc:
            raise ToolValidationError(self.name, _describe_validation(exc)) from exc

    def execute(self, ctx: RunContext, payload: dict[str, Any]) -> ToolOutput:
        data = self.validate(payload)
        ctx.check()
        return self._run(ctx, data)

    @abstractmethod
    def _run(self, ctx: RunContext, data: Any) -> ToolOutput:
        raise NotImplementedError


class ToolRegistry:
    """Stores tools by name and exports LangChain-compatible tool objects."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        self._observer: Callable[[ToolTrace], None] | None = None
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        """Resolve a tool by name or alias; `None` when it is not registered."""
        return self._tools.get(canonical_tool_name(name))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> list[str]:
        return list(self._tools)

    def tools(self) -> list[Tool]:
        return list(self._tools.values())

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each tool execution."""
        self._observer = observer

    def subset(self, names: Iterable[str]) -> "ToolRegistry":
        """Registry restricted to `names`; an empty selection keeps every tool."""
        wanted = {canonical_tool_name(name) for name in names if name.strip()}
        if not wanted:
            return self
        narrowed = ToolRegistry(tool for tool in self._tools.values() if tool.name in wanted)
        narrowed.set_observer(self._observer)
        return narrowed

    def execute(
        self,
        name: str,
        payload: dict[str, Any],
        ctx: RunContext | None = None,
    ) -> ToolOutput:
        tool = self.get(name)
        if tool is None:
            raise KeyError(f"Unknown tool: {name}")
        return self._execute_tool(tool, payload, ctx or RunContext.background())

    def render_catalog(self) -> str:
        """Tool / Description / Input blocks for prompts."""
        blocks = []
        for tool in self._tools.values():
            example = json.dumps(tool.input_example, ensure_ascii=False)
            blocks.append(
                f"Tool: {tool.name}\nDescription: {tool.description}\nInput: {example}"
            )
        return "\n\n".join(blocks)

    def as_langchain_tools(self, ctx: RunContext | None = None) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for tool in self._tools.values():
            tools.append(
                StructuredTool.from_function(
                    name=tool.name,
                    description=tool.description,
                    args_schema=tool.args_schema,
                    func=self._build_function(tool, ctx),
                )
            )
        return tools

    def _build_function(self, tool: Tool, ctx: RunContext | None) -> Callable[..., str]:
        def _callable(**kwargs: Any) -> str:
            output = self._execute_tool(tool, kwargs, ctx or RunContext.background())
            return render_observation(output)

        return _callable

    def _execute_tool(
        self, tool: Tool, payload: dict[str, Any], ctx: RunContext
    ) -> ToolOutput:
        start = perf_counter()
        try:
            output = tool.execute(ctx, payload)
        except Exception as exc:
            self._notify(tool.name, payload, "", start, error=str(exc))
            raise
        self._notify(tool.name, payload, render_observation(output), start)
        return output

    def _notify(
        self,
        name: str,
        payload: dict[str, Any],
        output: str,
        start: float,
        *,
        error: str | None = None,
    ) -> None:
        if self._observer is None:
            return
        self._observer(
            ToolTrace(
                name=name,
                input_payload=dict(payload),
                output_preview=output[:320],
                latency_ms=(perf_counter() - start) * 1000.0,
                error=error,
            )
        )


def render_observation(
    output: ToolOutput, *, max_snippets: int = 3, snippet_chars: int = 200
) -> str:
    """Short summary of a tool result: a count line plus leading snippets."""
    lines = [f"Found {output.count} documents."]
    for index, document in enumerate(output.documents[:max_snippets], start=1):
        lines.append(f"[{index}] {truncate(document.content, snippet_chars)}")
    if output.count == 0 and output.data:
        lines.append(preview(json.dumps(output.data, ensure_ascii=False, default=str)))
    return "\n".join(lines)


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _describe_validation(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "input"
        parts.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)
