"""CompressionPolicy: the per-session owner of compression state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry.trace import Tracer

from distillate.artifacts.manager import ArtifactManager
from distillate.compression.orchestrator import Summary, SummarizationOrchestrator
from distillate.compression.strategies import (
    CompressionStrategy,
    ConversationStrategy,
    MidGenerationStrategy,
)
from distillate.errors import MissingSessionError
from distillate.events.bus import DistillateEvent
from distillate.events.payloads import CompressionFallbackPayload, CompressionRequestedPayload
from distillate.models.config import CompressionConfig, DistillateConfig, ModelInfo
from distillate.models.message import Message
from distillate.models.result import CompressionEvent, CompressionResult, CompressionType
from distillate.store.ledger import ArtifactLedger
from distillate.tokens.estimator import TokenEstimator

if TYPE_CHECKING:
    from distillate.session import SessionManager

# Processed tool-call ids kept by partial_cleanup().
PARTIAL_CLEANUP_KEEP: int = 50


class CompressionPolicy:
    """
    Decides when a session's context must shrink and performs the shrinking.

    A policy is owned by exactly one session and delegates the mode-specific
    parts to its strategy. It holds the state both modes share: the artifact
    manager with its processed tool-call set, and the summarization
    orchestrator with the cumulative summary.

    Usage::

        policy = CompressionPolicy.for_mode(
            "mid_generation", session_id=session.id, sessions=manager, config=config
        )
        if policy.is_compression_needed(messages):
            result = await policy.safe_compress(messages)

    Args:
        session_id: Owning session.
        sessions: Registry the session is looked up in on every pass.
        config: Token thresholds.
        strategy: Mid-generation or conversation-level strategy.
        ledger: Artifact ledger consulted for existing artifacts.
        summarizer_model: Model for distillation calls.
        base_model: Model whose context window seeds oversized detection.
        summarization_timeout: Seconds before a distillation call falls back.
        estimator: Token estimator override.
        tracer: OpenTelemetry tracer override for ``safe_compress``.

    Raises:
        MissingSessionError: If ``session_id`` is not registered.
    """

    def __init__(
        self,
        *,
        session_id: str,
        sessions: SessionManager,
        config: CompressionConfig,
        strategy: CompressionStrategy,
        ledger: ArtifactLedger,
        summarizer_model: str | None = None,
        base_model: str | None = None,
        summarization_timeout: float | None = None,
        estimator: TokenEstimator | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        session = sessions.get_session(session_id)
        if session is None:
            raise MissingSessionError(session_id)

        self._session_id = session_id
        self._conversation_id = session.conversation_id
        self._sessions = sessions
        self._config = config
        self._strategy = strategy
        self._estimator = estimator or TokenEstimator()
        self._tracer = tracer
        self._context_window_size = ModelInfo.context_window_for(base_model)
        self._artifacts = ArtifactManager(
            session_id,
            sessions,
            ledger,
            compression_reason=strategy.kind,
            context_window_size=self._context_window_size,
            estimator=self._estimator,
        )
        self._orchestrator = SummarizationOrchestrator(
            self._conversation_id,
            summarizer_model,
            variant=strategy.summary_variant,
            timeout=summarization_timeout,
        )
        self._logger = structlog.get_logger("distillate.policy").bind(
            session_id=session_id, compression_type=strategy.kind
        )

    @classmethod
    def for_mode(
        cls,
        mode: CompressionType,
        *,
        session_id: str,
        sessions: SessionManager,
        config: DistillateConfig,
        ledger: ArtifactLedger | None = None,
        tracer: Tracer | None = None,
    ) -> CompressionPolicy:
        """
        Build a policy for *mode* from a :class:`DistillateConfig`.

        Raises:
            SummarizerConfigError: For ``"conversation_level"`` without
                ``config.summarizer_model``.
        """
        strategy: CompressionStrategy
        if mode == "conversation_level":
            strategy = ConversationStrategy(config.summarizer_model)
        else:
            strategy = MidGenerationStrategy()
        return cls(
            session_id=session_id,
            sessions=sessions,
            config=config.compression,
            strategy=strategy,
            ledger=ledger if ledger is not None else sessions.ledger,
            summarizer_model=config.summarizer_model,
            base_model=config.base_model,
            summarization_timeout=config.summarization_timeout,
            tracer=tracer,
        )

    # ── Collaborators used by strategies ───────────────────────────────────────

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def config(self) -> CompressionConfig:
        return self._config

    @property
    def strategy(self) -> CompressionStrategy:
        return self._strategy

    @property
    def compression_type(self) -> CompressionType:
        return self._strategy.kind

    @property
    def hard_limit(self) -> int:
        return self._config.hard_limit

    @property
    def estimator(self) -> TokenEstimator:
        return self._estimator

    @property
    def tracer(self) -> Tracer | None:
        return self._tracer

    @property
    def artifacts(self) -> ArtifactManager:
        return self._artifacts

    @property
    def orchestrator(self) -> SummarizationOrchestrator:
        return self._orchestrator

    @property
    def context_window_size(self) -> int | None:
        return self._context_window_size

    def context_size(self, messages: list[Message]) -> int:
        return self._estimator.context_size(messages)

    def record_compression(self, event: CompressionEvent) -> None:
        """Record a ``compression`` event on the owning session, if it still exists."""
        session = self._sessions.get_session(self._session_id)
        if session is None:
            self._logger.warning("compression_event_dropped_no_session")
            return
        session.record_event(DistillateEvent.COMPRESSION, self._session_id, event.model_dump())

    def record_fallback(self, error: str, original_count: int, compressed_count: int) -> None:
        session = self._sessions.get_session(self._session_id)
        if session is None:
            return
        payload: CompressionFallbackPayload = {
            "session_id": self._session_id,
            "error": error,
            "original_count": original_count,
            "compressed_count": compressed_count,
        }
        session.record_event(
            DistillateEvent.COMPRESSION_FALLBACK, self._session_id, dict(payload)
        )

    # ── Public API ─────────────────────────────────────────────────────────────

    def is_compression_needed(self, messages: list[Message]) -> bool:
        """
        True when ``hard_limit - size(messages) <= safety_buffer``.

        A pending manual request (mid-generation only) short-circuits to True
        without estimating.
        """
        return self._strategy.is_needed(self, messages)

    async def compress(self, messages: list[Message]) -> CompressionResult:
        """
        Run one compression pass without the safety net.

        Prefer :meth:`safe_compress`; this propagates whatever the strategy raises.
        """
        return await self._strategy.compress(self, messages)

    async def safe_compress(
        self, messages: list[Message], full_context_size: int | None = None
    ) -> CompressionResult:
        """
        Compress, falling back to dropping old messages if compression fails.

        Never raises. See :func:`distillate.compression.safe.safe_compress`.
        """
        from distillate.compression.safe import safe_compress

        return await safe_compress(self, messages, full_context_size)

    def request_manual_compression(self, reason: str | None = None) -> None:
        """
        Force the next :meth:`is_compression_needed` check to return True.

        Raises:
            UnsupportedOperationError: On a conversation-level policy.
        """
        self._strategy.request_manual_compression(reason)
        reason = reason or "Manual request from LLM"
        self._logger.info("manual_compression_requested", reason=reason)
        session = self._sessions.get_session(self._session_id)
        if session is not None:
            payload: CompressionRequestedPayload = {
                "session_id": self._session_id,
                "reason": reason,
            }
            session.record_event(
                DistillateEvent.COMPRESSION_REQUESTED, self._session_id, dict(payload)
            )

    def get_compression_summary(self) -> Summary | None:
        return self._orchestrator.summary

    @property
    def processed_tool_calls(self) -> list[str]:
        return self._artifacts.processed_tool_calls

    def cleanup(self, *, reset_summary: bool = False, keep_recent_tool_calls: int = 0) -> None:
        """
        Prune in-memory state.

        Args:
            reset_summary: Discard the cumulative summary.
            keep_recent_tool_calls: Number of most recent processed tool-call
                ids to keep. 0 clears the set.
        """
        self._artifacts.retain_recent(keep_recent_tool_calls)
        if reset_summary:
            self._orchestrator.reset()

    def partial_cleanup(self) -> None:
        """Keep the 50 most recent processed ids and the cumulative summary."""
        self.cleanup(keep_recent_tool_calls=PARTIAL_CLEANUP_KEEP)

    def full_cleanup(self) -> None:
        """Forget every processed id and the cumulative summary."""
        self.cleanup(reset_summary=True)

    def get_state(self) -> dict[str, Any]:
        """Debug snapshot of config, processed ids, cumulative summary and strategy state."""
        summary = self._orchestrator.summary
        return {
            "compression_type": self._strategy.kind,
            "config": self._config.model_dump(),
            "processed_tool_calls": self._artifacts.processed_tool_calls,
            "cumulative_summary": summary.model_dump() if summary is not None else None,
            **self._strategy.state(),
        }
