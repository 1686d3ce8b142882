"""
Compression strategies.

A strategy decides *when* a window needs compressing and *which* messages a
pass covers. Everything shared (artifact eviction, summarisation, event
recording, cleanup) lives on :class:`~distillate.compression.policy.CompressionPolicy`,
which every strategy method receives.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal, Protocol

import structlog

from distillate.errors import SummarizerConfigError, UnsupportedOperationError
from distillate.models.message import Message
from distillate.models.result import CompressionEvent, CompressionResult, CompressionType

if TYPE_CHECKING:
    from distillate.compression.policy import CompressionPolicy

logger = structlog.get_logger("distillate.strategies")


class CompressionStrategy(Protocol):
    """The two-method shape both compression modes share."""

    kind: CompressionType
    summary_variant: Literal["incremental", "history"]

    def is_needed(self, policy: CompressionPolicy, messages: list[Message]) -> bool: ...

    async def compress(
        self, policy: CompressionPolicy, messages: list[Message]
    ) -> CompressionResult: ...

    def request_manual_compression(self, reason: str | None = None) -> None: ...

    def state(self) -> dict[str, Any]: ...


def _over_threshold(policy: CompressionPolicy, messages: list[Message]) -> bool:
    config = policy.config
    return config.hard_limit - policy.context_size(messages) <= config.safety_buffer


class MidGenerationStrategy:
    """
    Incremental compression while a generation is in flight.

    Only messages after the last cut point are evicted and summarised;
    everything earlier is already folded into the cumulative summary.
    """

    kind: CompressionType = "mid_generation"
    summary_variant: Literal["incremental", "history"] = "incremental"

    def __init__(self) -> None:
        self.manual_trigger = False
        self.last_processed_message_index = 0

    def request_manual_compression(self, reason: str | None = None) -> None:
        self.manual_trigger = True

    def is_needed(self, policy: CompressionPolicy, messages: list[Message]) -> bool:
        if self.manual_trigger:
            return True
        return _over_threshold(policy, messages)

    async def compress(
        self, policy: CompressionPolicy, messages: list[Message]
    ) -> CompressionResult:
        start = self.last_processed_message_index
        size_before = policy.context_size(messages)
        log = logger.bind(session_id=policy.session_id)
        log.info(
            "compression_started",
            compression_type=self.kind,
            message_count=len(messages),
            start_index=start,
            context_size=size_before,
        )

        artifact_map = await policy.artifacts.save_as_artifacts(messages, start)
        produced = policy.artifacts.last_produced
        summary = await policy.orchestrator.distill(messages[start:], artifact_map)
        size_after = policy.estimator.estimate(summary)

        policy.record_compression(
            CompressionEvent(
                reason="manual" if self.manual_trigger else "automatic",
                message_count=len(messages),
                artifact_count=len(produced),
                context_size_before=size_before,
                context_size_after=size_after,
                compression_type=self.kind,
            )
        )

        self.last_processed_message_index = len(messages)
        self.manual_trigger = False

        log.info(
            "compression_completed",
            artifact_count=len(produced),
            context_size_before=size_before,
            context_size_after=size_after,
        )
        return CompressionResult(
            artifact_ids=produced,
            summary=summary,
        )

    def state(self) -> dict[str, Any]:
        return {
            "manual_trigger": self.manual_trigger,
            "last_processed_message_index": self.last_processed_message_index,
        }


class ConversationStrategy:
    """
    Full-history compression between turns.

    Every pass re-evicts and re-summarises the whole conversation from the
    first message, seeded with the prior history summary.

    Raises:
        SummarizerConfigError: If built without a summarizer model.
    """

    kind: CompressionType = "conversation_level"
    summary_variant: Literal["incremental", "history"] = "history"

    def __init__(self, summarizer_model: str | None) -> None:
        if not summarizer_model or not summarizer_model.strip():
            raise SummarizerConfigError(
                "Conversation-level compression requires a summarizer model"
            )
        self.summarizer_model = summarizer_model

    def request_manual_compression(self, reason: str | None = None) -> None:
        raise UnsupportedOperationError(
            "Manual compression requests are only supported for mid-generation compression"
        )

    def is_needed(self, policy: CompressionPolicy, messages: list[Message]) -> bool:
        return _over_threshold(policy, messages)

    async def compress(
        self, policy: CompressionPolicy, messages: list[Message]
    ) -> CompressionResult:
        size_before = policy.context_size(messages)
        log = logger.bind(session_id=policy.session_id)
        log.info(
            "compression_started",
            compression_type=self.kind,
            message_count=len(messages),
            context_size=size_before,
        )

        artifact_map = await policy.artifacts.save_as_artifacts(messages, 0)
        produced = policy.artifacts.last_produced
        summary = await policy.orchestrator.distill(messages, artifact_map)
        size_after = policy.estimator.estimate(summary)

        policy.record_compression(
            CompressionEvent(
                reason="automatic",
                message_count=len(messages),
                artifact_count=len(produced),
                context_size_before=size_before,
                context_size_after=size_after,
                compression_type=self.kind,
            )
        )

        log.info(
            "compression_completed",
            artifact_count=len(produced),
            context_size_before=size_before,
            context_size_after=size_after,
        )
        return CompressionResult(
            artifact_ids=produced,
            summary=summary,
        )

    def state(self) -> dict[str, Any]:
        return {"summarizer_model": self.summarizer_model}
