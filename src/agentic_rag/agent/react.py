"""Bounded Thought / Action / Observation loop."""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.prompts import ChatPromptTemplate

from agentic_rag.agent.react_protocol import parse_action_input, parse_turn, strip_final_answer
from agentic_rag.agent.registry import ToolRegistry, render_observation
from agentic_rag.config import AgentConfig
from agentic_rag.context import RunContext
from agentic_rag.errors import OperationCancelledError, UnparsableOutputError
from agentic_rag.llm import generate_text
from agentic_rag.types import Document, ReactResult, ReasoningTrace

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """
You are a professional AI assistant that uses the ReAct (Reasoning + Acting) framework.

Available tools:
{tools}

Instructions:
1. Analyze the question step by step using Thought -> Action -> Observation cycles
2. Use tools to retrieve relevant information when needed
3. When you have enough information to answer, output "Final Answer: <your answer>"

Format:
Thought: <your reasoning about what to do>
Action: <tool_name>
Action Input: <JSON input for the tool>

OR when ready to answer:
Thought: <your final reasoning>
Final Answer: <your complete answer>

Current question: {question}
""".strip()

SUMMARY_REQUEST = (
    "Please summarize your findings and provide a final answer based on what "
    "you have gathered so far."
)

REACT_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", _SYSTEM_PROMPT),
        ("human", "{question}"),
    ]
)


class ReactExecutor:
    """Runs the ReAct loop against a tool registry.

    Each iteration makes one model call. A completion with no action and no
    final answer is fatal (`UnparsableOutputError`) so the caller can fall
    back to a simpler strategy. Tool failures become error observations and
    the loop continues. When the iteration budget runs out, one extra call
    asks the model to conclude.
    """

    def __init__(
        self,
        llm: Any,
        registry: ToolRegistry,
        *,
        config: AgentConfig | None = None,
    ) -> None:
        self.llm = llm
        self.registry = registry
        self.config = config or AgentConfig()

    def run(
        self,
        question: str,
        *,
        ctx: RunContext | None = None,
        max_iterations: int | None = None,
    ) -> ReactResult:
        ctx = ctx or RunContext.background()
        limit = max_iterations if max_iterations and max_iterations > 0 else self.config.max_iterations
        messages: list[BaseMessage] = REACT_PROMPT.format_messages(
            tools=self.registry.render_catalog(),
            question=question,
        )
        trace = ReasoningTrace()
        references: list[Document] = []

        for iteration in range(limit):
            content = generate_text(
                self.llm, messages, ctx, purpose=f"react iteration {iteration + 1}"
            )
            turn = parse_turn(content)

            if turn.is_final:
                if turn.thought:
                    trace.add("thought", turn.thought)
                answer = turn.final_answer or ""
                trace.add("final_answer", answer)
                logger.info("react finished after %d iterations", iteration + 1)
                return ReactResult(
                    answer=answer,
                    references=references,
                    reasoning_steps=trace.steps,
                    iterations=iteration + 1,
                )

            if turn.thought:
                trace.add("thought", turn.thought)

            if not turn.action:
                raise UnparsableOutputError(
                    f"react: cannot parse model output at iteration {iteration + 1}: "
                    f"{content[:200]!r}"
                )

            action_input = parse_action_input(turn.action_input_raw)
            trace.add("action", turn.action, action_input=action_input)
            observation = self._observe(turn.action, action_input, references, ctx)
            trace.add("observation", observation)

            messages.append(AIMessage(content=content))
            messages.append(HumanMessage(content=f"Observation: {observation}"))

        logger.info("react reached %d iterations without a final answer, summarizing", limit)
        messages.append(HumanMessage(content=SUMMARY_REQUEST))
        summary = generate_text(self.llm, messages, ctx, purpose="react summary")
        answer = strip_final_answer(summary)
        trace.add("final_answer", answer)
        return ReactResult(
            answer=answer,
            references=references,
            reasoning_steps=trace.steps,
            iterations=limit,
        )

    def _observe(
        self,
        action: str,
        action_input: dict[str, Any],
        references: list[Document],
        ctx: RunContext,
    ) -> str:
        if self.registry.get(action) is None:
            return f"Error: tool {action!r} not found"
        try:
            output = self.registry.execute(action, action_input, ctx)
        except OperationCancelledError:
            raise
        except Exception as exc:
            logger.warning("react tool %s failed: %s", action, exc)
            return f"Error: {exc}"
        references.extend(output.documents)
        return render_observation(
            output,
            max_snippets=self.config.observation_snippets,
            snippet_chars=self.config.observation_snippet_chars,
        )
