"""Typed payload definitions for each DistillateEvent.

Usage example::

    from distillate.events.bus import DistillateEvent, EventBus
    from distillate.events.payloads import CompressionPayload

    def on_compression(event: DistillateEvent, payload: CompressionPayload) -> None:
        print(
            f"{payload['compression_type']} compression of {payload['message_count']} messages "
            f"({payload['context_size_before']} → {payload['context_size_after']} tokens)"
        )

    bus.subscribe(DistillateEvent.COMPRESSION, on_compression)  # type: ignore[arg-type]
"""

from __future__ import annotations

from typing import Any, Literal, TypedDict

# ── Session lifecycle ─────────────────────────────────────────────────────────


class SessionCreatedPayload(TypedDict):
    """Payload for :attr:`DistillateEvent.SESSION_CREATED`."""

    session_id: str
    conversation_id: str
    tenant_id: str
    project_id: str


class SessionClosedPayload(TypedDict):
    """Payload for :attr:`DistillateEvent.SESSION_CLOSED`."""

    session_id: str


# ── Artifacts ─────────────────────────────────────────────────────────────────


class ArtifactSavedPayload(TypedDict):
    """Payload for :attr:`DistillateEvent.ARTIFACT_SAVED`.

    This is the ``model_dump()`` of an
    :class:`~distillate.models.artifact.ArtifactRecord`.
    """

    artifact_id: str
    task_id: str
    tool_call_id: str
    artifact_type: str
    pending_generation: bool
    tenant_id: str
    project_id: str
    context_id: str
    sub_agent_id: str
    metadata: dict[str, Any]
    summary_data: dict[str, Any]
    data: dict[str, Any]
    name: str | None
    description: str | None
    created_at: int


# ── Compression ───────────────────────────────────────────────────────────────


class CompressionPayload(TypedDict):
    """Payload for :attr:`DistillateEvent.COMPRESSION`."""

    reason: Literal["manual", "automatic"]
    message_count: int
    artifact_count: int
    context_size_before: int
    context_size_after: int
    """Estimate of the serialised summary."""
    compression_type: Literal["mid_generation", "conversation_level"]


class CompressionRequestedPayload(TypedDict):
    """Payload for :attr:`DistillateEvent.COMPRESSION_REQUESTED`."""

    session_id: str
    reason: str


class CompressionFallbackPayload(TypedDict):
    """Payload for :attr:`DistillateEvent.COMPRESSION_FALLBACK`."""

    session_id: str
    error: str
    original_count: int
    compressed_count: int
