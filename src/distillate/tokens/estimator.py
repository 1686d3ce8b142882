"""Character-based token estimation shared by every budget comparison."""

from __future__ import annotations

import json
import math
from typing import Any

from pydantic import BaseModel

from distillate.models.message import Message, TextBlock, ToolCallBlock, ToolResultBlock

CHARS_PER_TOKEN: int = 4


def to_text(value: Any) -> str:
    """
    Return the textual form of *value* used for size estimates.

    Strings pass through. Pydantic models are dumped with their wire (alias)
    names. Everything else is compact JSON; values JSON cannot encode fall
    back to ``str()``.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True, exclude_none=True)
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=_default)
    except (TypeError, ValueError):
        return str(value)


def _default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


class TokenEstimator:
    """
    Deterministic token approximation: ``ceil(characters / 4)``.

    No tokenizer is loaded; the same heuristic is used for every model so
    thresholds computed at different points of a compression pass agree with
    each other.

    Example::

        estimator = TokenEstimator()
        estimator.estimate("hello world")        # 3
        estimator.estimate({"key": "value"})     # ceil(15 / 4) == 4
        estimator.context_size(messages)
    """

    def estimate(self, value: Any) -> int:
        """
        Estimate the token count of a string or structured value.

        Args:
            value: Any value. Non-strings are serialised first.

        Returns:
            ``ceil(len(text) / 4)``; 0 for the empty string.
        """
        return math.ceil(len(to_text(value)) / CHARS_PER_TOKEN)

    def estimate_message(self, message: Message) -> int:
        """
        Estimate the tokens a single message occupies in context.

        Tool calls count their id, name and input; tool results count their
        id, name and output. Messages with no content contribute nothing.
        """
        content = message.content
        if isinstance(content, list):
            total = 0
            for block in content:
                if isinstance(block, TextBlock):
                    total += self.estimate(block.text or "")
                elif isinstance(block, ToolCallBlock):
                    total += self.estimate(
                        {
                            "toolCallId": block.tool_call_id,
                            "toolName": block.tool_name,
                            "input": block.input,
                        }
                    )
                elif isinstance(block, ToolResultBlock):
                    total += self.estimate(
                        {
                            "toolCallId": block.tool_call_id,
                            "toolName": block.tool_name,
                            "output": block.output,
                        }
                    )
            return total
        if isinstance(content, str):
            return self.estimate(content)
        if content:
            return self.estimate(content)
        return 0

    def context_size(self, messages: list[Message]) -> int:
        """Total estimated tokens across *messages*."""
        return sum(self.estimate_message(m) for m in messages)
