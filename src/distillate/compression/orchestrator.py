"""Holds a policy's cumulative summary and drives distillation over a message window."""

from __future__ import annotations

from typing import Literal

import structlog

from distillate.compression.distill import distill_conversation, distill_conversation_history
from distillate.compression.transcript import format_transcript
from distillate.models.artifact import ArtifactInfo
from distillate.models.message import Message
from distillate.models.summary import ConversationHistorySummary, ConversationSummary

Summary = ConversationSummary | ConversationHistorySummary


class SummarizationOrchestrator:
    """
    Produces the next cumulative summary from a message window.

    Every call hands the previous summary to the distiller and replaces it
    with the result; the distillers never raise, so neither does
    :meth:`distill`.

    Args:
        conversation_id: Stamped into every summary.
        model: Summarizer model in litellm format.
        variant: ``"incremental"`` uses the general distiller,
            ``"history"`` the full-history one.
        timeout: Per-call timeout in seconds.
    """

    def __init__(
        self,
        conversation_id: str,
        model: str | None,
        *,
        variant: Literal["incremental", "history"] = "incremental",
        timeout: float | None = None,
    ) -> None:
        self._conversation_id = conversation_id
        self._model = model
        self._variant = variant
        self._timeout = timeout
        self._summary: Summary | None = None
        self._logger = structlog.get_logger("distillate.orchestrator").bind(
            conversation_id=conversation_id
        )

    @property
    def summary(self) -> Summary | None:
        """The cumulative summary, or None before the first pass."""
        return self._summary

    def reset(self) -> None:
        self._summary = None

    async def distill(
        self, messages: list[Message], artifact_map: dict[str, ArtifactInfo]
    ) -> Summary:
        def provider(max_chars: int | None) -> str:
            return format_transcript(messages, artifact_map, max_chars)

        if self._variant == "history":
            prior = (
                self._summary if isinstance(self._summary, ConversationHistorySummary) else None
            )
            summary: Summary = await distill_conversation_history(
                provider, prior, self._model, self._conversation_id, timeout=self._timeout
            )
        else:
            prior_incremental = (
                self._summary if isinstance(self._summary, ConversationSummary) else None
            )
            summary = await distill_conversation(
                provider,
                prior_incremental,
                self._model,
                self._conversation_id,
                timeout=self._timeout,
            )

        self._summary = summary
        self._logger.debug("summary_updated", variant=self._variant, message_count=len(messages))
        return summary
