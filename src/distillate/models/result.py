"""Result and event models for compression passes."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from distillate.models.message import Message
from distillate.models.summary import ConversationHistorySummary, ConversationSummary

CompressionType = Literal["mid_generation", "conversation_level"]


class CompressionResult(BaseModel):
    """
    The outcome of one compression pass.

    ``summary`` is a structured summary on the normal path. In fallback mode
    (the strategy raised) it is the trimmed list of raw messages and
    ``artifact_ids`` is empty.
    """

    artifact_ids: list[str] = Field(default_factory=list)
    summary: ConversationSummary | ConversationHistorySummary | list[Message]

    @property
    def is_fallback(self) -> bool:
        return isinstance(self.summary, list)


class CompressionEvent(BaseModel):
    """Payload of the ``compression`` event recorded after every pass."""

    reason: Literal["manual", "automatic"]
    message_count: int
    artifact_count: int
    context_size_before: int
    context_size_after: int
    compression_type: CompressionType
