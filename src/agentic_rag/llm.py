"""Chat model construction and the single call boundary for model requests."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any

from langchain_core.messages import BaseMessage

from agentic_rag.config import LLMConfig
from agentic_rag.context import RunContext
from agentic_rag.errors import AgenticRagError, UpstreamError

logger = logging.getLogger(__name__)

_POLL_SECONDS = 0.05


def create_chat_model(config: LLMConfig) -> Any:
    """Build the production chat model, or `None` when no API key is set."""
    if not config.api_key:
        return None

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(
        model=config.model,
        api_key=config.api_key,
        base_url=config.base_url,
        temperature=config.temperature,
        timeout=config.timeout_seconds,
        max_retries=config.max_retries,
    )


def generate_text(
    llm: Any,
    messages: Sequence[BaseMessage],
    ctx: RunContext,
    *,
    purpose: str = "generate",
) -> str:
    """Run one blocking completion and return its text content.

    Any model failure is wrapped as `UpstreamError`. The call runs on a worker
    thread watched against `ctx`, so cancellation or an expired deadline
    raises immediately instead of waiting for the client timeout.
    """

    ctx.check()
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chat-model")
    try:
        future = executor.submit(llm.invoke, list(messages))
        while not wait([future], timeout=ctx.remaining(_POLL_SECONDS)).done:
            ctx.check()
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    try:
        response = future.result()
    except AgenticRagError:
        raise
    except Exception as exc:
        logger.debug("chat model call failed during %s: %s", purpose, exc)
        raise UpstreamError(f"{purpose}: chat model call failed: {exc}") from exc
    ctx.check()
    return message_text(response)


def stream_text(
    llm: Any,
    messages: Sequence[BaseMessage],
    ctx: RunContext,
    *,
    purpose: str = "stream",
) -> Iterator[str]:
    """Yield text chunks from an incremental completion."""

    ctx.check()
    try:
        for chunk in llm.stream(list(messages)):
            ctx.check()
            text = message_text(chunk)
            if text:
                yield text
    except AgenticRagError:
        raise
    except Exception as exc:
        raise UpstreamError(f"{purpose}: chat model stream failed: {exc}") from exc


def message_text(message: Any) -> str:
    if isinstance(message, str):
        return message
    if isinstance(message, dict):
        return str(message.get("content", ""))
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return "".join(parts)
    return str(content)
