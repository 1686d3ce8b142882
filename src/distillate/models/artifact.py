"""Artifact records produced when tool results are evicted from context."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field


class OversizedInfo(BaseModel):
    """Result of classifying a payload against a model's context window."""

    is_oversized: bool
    original_token_size: int
    context_window_size: int | None = None
    retrieval_blocked: bool = False
    warning: str | None = None
    """Human-readable warning. Present only when ``is_oversized``."""
    structure_info: str | None = None
    """Shape description of the payload. Present only when ``is_oversized``."""


class ArtifactScope(BaseModel):
    """Tenant/project scope every ledger lookup is filtered by."""

    tenant_id: str
    project_id: str


class ArtifactMetadata(BaseModel):
    """Lookup-side metadata stored alongside an artifact."""

    tool_call_id: str
    tool_name: str
    tool_args: Any = None
    compression_reason: str
    is_oversized: bool = False
    original_token_size: int = 0
    context_window_size: int | None = None
    retrieval_blocked: bool = False


class ArtifactRecord(BaseModel):
    """
    A durably stored record of one tool call's output.

    Records are immutable once emitted. ``pending_generation`` stays True
    until a downstream process assigns a human name and description.
    The ``artifact_id`` is derived from the tool name, the tool-call id and a
    random suffix, so two identical outputs from different calls are distinct
    records.
    """

    artifact_id: str
    task_id: str
    tool_call_id: str
    artifact_type: str = "tool_result"
    pending_generation: bool = True
    tenant_id: str
    project_id: str
    context_id: str
    """Conversation the artifact belongs to."""
    sub_agent_id: str
    """Session that produced the artifact."""
    metadata: ArtifactMetadata
    summary_data: dict[str, Any] = Field(default_factory=dict)
    data: dict[str, Any] = Field(default_factory=dict)
    """Full payload: ``toolName``, ``toolInput``, ``toolResult``, ``compressedAt``."""
    name: str | None = None
    description: str | None = None
    created_at: int = Field(default_factory=lambda: int(time.time() * 1000))


class ExistingArtifact(BaseModel):
    """The cached view of a ledger artifact returned by a batched lookup."""

    artifact_id: str
    tool_call_id: str
    is_oversized: bool = False
    tool_args: Any = None
    tool_name: str | None = None
    summary_data: dict[str, Any] | None = None

    @classmethod
    def from_record(cls, record: ArtifactRecord) -> ExistingArtifact:
        return cls(
            artifact_id=record.artifact_id,
            tool_call_id=record.tool_call_id,
            is_oversized=record.metadata.is_oversized,
            tool_args=record.metadata.tool_args,
            tool_name=record.metadata.tool_name,
            summary_data=record.summary_data or None,
        )


class ArtifactInfo(BaseModel):
    """What the transcript formatter needs to know about an evicted tool result."""

    artifact_id: str
    is_oversized: bool = False
    tool_args: Any = None
    structure_info: str | None = None
    oversized_warning: str | None = None
    summary_data: dict[str, Any] | None = None
