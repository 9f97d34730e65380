"""Line-oriented parser for ReAct completions.

Recognized tokens, matched case-sensitively anywhere in the text:

- ``Final Answer:`` everything after the first occurrence is the answer;
  any ``Thought:`` before it is kept as the closing thought.
- ``Thought:`` runs until the next ``Action:`` or ``Final Answer:``.
- ``Action:`` the tool name, up to the end of its line.
- ``Action Input:`` following the action line, up to the first blank line.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

THOUGHT = "Thought:"
ACTION = "Action:"
ACTION_INPUT = "Action Input:"
FINAL_ANSWER = "Final Answer:"

_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


@dataclass(slots=True)
class ReactTurn:
    thought: str = ""
    action: str = ""
    action_input_raw: str = ""
    final_answer: str | None = None

    @property
    def is_final(self) -> bool:
        return self.final_answer is not None


def parse_turn(content: str) -> ReactTurn:
    marker = content.find(FINAL_ANSWER)
    if marker >= 0:
        return ReactTurn(
            thought=extract_thought(content[:marker]),
            final_answer=content[marker + len(FINAL_ANSWER) :].strip(),
        )
    action, action_input_raw = extract_action(content)
    return ReactTurn(
        thought=extract_thought(content),
        action=action,
        action_input_raw=action_input_raw,
    )


def extract_thought(content: str) -> str:
    start = content.find(THOUGHT)
    if start < 0:
        return ""
    rest = content[start + len(THOUGHT) :]
    end = len(rest)
    for keyword in (ACTION, FINAL_ANSWER):
        index = rest.find(keyword)
        if 0 <= index < end:
            end = index
    return rest[:end].strip()


def extract_action(content: str) -> tuple[str, str]:
    """Return ``(tool name, raw input text)``; empty strings when absent."""
    start = content.find(ACTION)
    if start < 0:
        return "", ""
    rest = content[start + len(ACTION) :]
    newline = rest.find("\n")
    if newline < 0:
        return rest.strip(), ""
    name = rest[:newline].strip()
    rest = rest[newline + 1 :]

    input_start = rest.find(ACTION_INPUT)
    if input_start < 0:
        return name, ""
    raw = rest[input_start + len(ACTION_INPUT) :].strip()
    return name, raw.split("\n\n", 1)[0].strip()


def parse_action_input(raw: str) -> dict[str, Any]:
    """Decode the action input; non-JSON text becomes ``{"query": raw}``."""
    if not raw:
        return {}
    text = _FENCE.sub("", raw.strip()).strip()
    try:
        value = json.loads(text)
    except ValueError:
        return {"query": raw}
    if not isinstance(value, dict):
        return {"query": raw}
    return value


def strip_final_answer(text: str) -> str:
    stripped = text.strip()
    marker = stripped.find(FINAL_ANSWER)
    if marker >= 0:
        return stripped[marker + len(FINAL_ANSWER) :].strip()
    return stripped
