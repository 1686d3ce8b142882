"""Conversation message and content-block models."""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# ── Content Blocks ─────────────────────────────────────────────────────────────


class _Block(BaseModel):
    """Shared config: accept both snake_case and the camelCase wire names."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class TextBlock(_Block):
    """A plain text segment of a message."""

    type: Literal["text"] = "text"
    text: str = ""


class ToolCallBlock(_Block):
    """A tool invocation emitted by the model."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(default="", alias="toolName")
    input: Any = None


class ToolResultBlock(_Block):
    """The output of a tool invocation, keyed by the originating tool call id."""

    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(default="", alias="toolName")
    output: Any = None
    input: Any = None
    """Tool arguments, when the producer attached them to the result."""


# Closed tagged union, discriminated on ``type``.
ContentBlock = Annotated[
    TextBlock | ToolCallBlock | ToolResultBlock,
    Field(discriminator="type"),
]


# ── Message ────────────────────────────────────────────────────────────────────


class Message(BaseModel):
    """
    A single conversation message.

    ``content`` is either plain text or an ordered list of content blocks.
    Rows loaded from the conversation database may still use the legacy
    single-block shape: ``message_type="tool-result"`` with a flat
    ``{"text": ...}`` content dict and the tool identity carried in
    ``metadata["a2a_metadata"]``. Call :func:`normalize_legacy_message` once at
    the boundary to turn those into a :class:`ToolResultBlock`.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    role: str | None = None
    content: str | list[ContentBlock] | dict[str, Any] | None = None
    message_type: str | None = Field(default=None, alias="messageType")
    metadata: dict[str, Any] | None = None

    @property
    def blocks(self) -> list[TextBlock | ToolCallBlock | ToolResultBlock]:
        """Content blocks, or an empty list for text/legacy content."""
        if isinstance(self.content, list):
            return self.content
        return []

    def tool_results(self) -> list[ToolResultBlock]:
        return [b for b in self.blocks if isinstance(b, ToolResultBlock)]

    @property
    def is_legacy_tool_result(self) -> bool:
        return self.message_type == "tool-result" and not isinstance(self.content, list)

    @property
    def legacy_tool_metadata(self) -> dict[str, Any]:
        """The ``a2a_metadata`` side channel of a legacy tool-result row."""
        return (self.metadata or {}).get("a2a_metadata") or {}

    def legacy_text(self) -> str | None:
        """Flat text of a legacy ``{"text": ...}`` content dict."""
        if isinstance(self.content, dict):
            text = self.content.get("text")
            return text if text else None
        return None


def normalize_legacy_message(
    message: Message,
    skip_tool: Callable[[str | None], bool] | None = None,
) -> bool:
    """
    Convert a legacy flat tool-result message into a ``ToolResultBlock`` in place.

    Args:
        message: The message to normalise. Already-normalised messages and
            non-tool-result rows are left untouched.
        skip_tool: Optional predicate on the tool name. Returning True leaves
            the message in its legacy shape (used for internal tools).

    Returns:
        True if the message was converted.
    """
    if not message.is_legacy_tool_result:
        return False
    text = message.legacy_text()
    if text is None:
        return False

    meta = message.legacy_tool_metadata
    tool_name = meta.get("toolName")
    tool_call_id = meta.get("toolCallId")
    if skip_tool is not None and skip_tool(tool_name):
        return False
    if not tool_name or not tool_call_id:
        return False

    output = meta.get("toolOutput")
    message.content = [
        ToolResultBlock(
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            input=meta.get("toolArgs"),
            output=output if output is not None else text,
        )
    ]
    return True
