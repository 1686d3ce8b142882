"""Evicts tool results from a message window into artifacts, exactly once per tool call."""

from __future__ import annotations

import asyncio
import secrets
import string
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, NamedTuple

import structlog

from distillate.artifacts.oversized import detect_oversized
from distillate.artifacts.utils import (
    generate_preview,
    is_empty_result,
    is_internal_tool,
    remove_structure_hints,
    to_json_safe,
)
from distillate.errors import MissingSessionError
from distillate.events.bus import DistillateEvent
from distillate.models.artifact import (
    ArtifactInfo,
    ArtifactMetadata,
    ArtifactRecord,
    ExistingArtifact,
)
from distillate.models.message import (
    Message,
    ToolCallBlock,
    ToolResultBlock,
    normalize_legacy_message,
)
from distillate.store.ledger import ArtifactLedger
from distillate.tokens.estimator import TokenEstimator

if TYPE_CHECKING:
    from distillate.session import CompressionSession, SessionManager

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


class LookupOutcome(NamedTuple):
    """Result of the batched existence query. ``failed`` marks the degraded path."""

    found: dict[str, ExistingArtifact]
    failed: bool = False


def extract_tool_call_ids(messages: list[Message]) -> list[str]:
    """
    Collect candidate tool-call ids from both message formats.

    Block-format tool results and legacy flat tool-result rows both count;
    internal tools are excluded. Duplicates are removed, first occurrence wins.
    """
    ids: dict[str, None] = {}
    for message in messages:
        if message.is_legacy_tool_result:
            meta = message.legacy_tool_metadata
            tool_call_id = meta.get("toolCallId")
            if tool_call_id and not is_internal_tool(meta.get("toolName")):
                ids[tool_call_id] = None
        for block in message.tool_results():
            if not is_internal_tool(block.tool_name):
                ids[block.tool_call_id] = None
    return list(ids)


def make_artifact_id(tool_name: str | None, tool_call_id: str) -> str:
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(8))
    return f"compress_{tool_name or 'tool'}_{tool_call_id}_{suffix}"


class ArtifactManager:
    """
    Turns the tool results of a message window into artifact references.

    One manager belongs to one compression policy. It remembers which tool
    calls it has already handled (insertion-ordered, so the oldest can be
    pruned) and consults the ledger with a single batched query per call so
    the cost of a pass does not grow with the number of messages.

    Calls to :meth:`save_as_artifacts` are serialised with an
    :class:`asyncio.Lock`: a second concurrent caller for the same session
    waits, then sees the first caller's tool calls as processed.
    """

    def __init__(
        self,
        session_id: str,
        sessions: SessionManager,
        ledger: ArtifactLedger,
        *,
        compression_reason: str,
        context_window_size: int | None = None,
        estimator: TokenEstimator | None = None,
    ) -> None:
        self._session_id = session_id
        self._sessions = sessions
        self._ledger = ledger
        self._compression_reason = compression_reason
        self._context_window_size = context_window_size
        self._estimator = estimator or TokenEstimator()
        self._processed: dict[str, ArtifactInfo | None] = {}
        self._tool_inputs: dict[str, Any] = {}
        self._last_produced: list[str] = []
        self._lock = asyncio.Lock()
        self._logger = structlog.get_logger("distillate.artifacts").bind(session_id=session_id)

    # ── Processed-set bookkeeping ──────────────────────────────────────────────

    @property
    def processed_tool_calls(self) -> list[str]:
        """Tool-call ids handled so far, oldest first."""
        return list(self._processed)

    @property
    def last_produced(self) -> list[str]:
        """Artifact ids created or reused from the ledger by the latest call, in message order."""
        return list(self._last_produced)

    def retain_recent(self, keep: int) -> None:
        """Keep only the ``keep`` most recently processed ids (0 clears everything)."""
        if keep <= 0:
            self._processed.clear()
            return
        recent = list(self._processed.items())[-keep:]
        self._processed = dict(recent)

    # ── Main entry point ───────────────────────────────────────────────────────

    async def save_as_artifacts(
        self, messages: list[Message], start_index: int = 0
    ) -> dict[str, ArtifactInfo]:
        """
        Evict every new tool result in ``messages[start_index:]``.

        Legacy flat tool-result messages in the window are normalised in
        place. Existing ledger artifacts are reused; new ones are announced
        through an ``artifact_saved`` event on the owning session.

        Args:
            messages: The conversation messages.
            start_index: First message to consider.

        Returns:
            Mapping of tool-call id to :class:`ArtifactInfo`, in message order.

        Raises:
            MissingSessionError: If the owning session no longer exists.
        """
        async with self._lock:
            session = self._sessions.get_session(self._session_id)
            if session is None:
                raise MissingSessionError(self._session_id)

            window = messages[start_index:]

            self._tool_inputs = {
                block.tool_call_id: block.input
                for message in window
                for block in message.blocks
                if isinstance(block, ToolCallBlock)
            }
            for message in window:
                normalize_legacy_message(message, skip_tool=is_internal_tool)

            lookup = await self._find_existing(session, extract_tool_call_ids(window))

            mapping: dict[str, ArtifactInfo] = {}
            produced: list[str] = []
            for message in window:
                for block in message.tool_results():
                    seen = block.tool_call_id in self._processed
                    info = self._process_tool_result(block, session, lookup)
                    if info is None:
                        continue
                    mapping[block.tool_call_id] = info
                    if not seen and info.artifact_id not in produced:
                        produced.append(info.artifact_id)
            self._last_produced = produced

            self._logger.debug(
                "artifacts_processed",
                window_size=len(window),
                artifact_count=len(mapping),
                produced_count=len(produced),
                lookup_failed=lookup.failed,
            )
            return mapping

    async def _find_existing(
        self, session: CompressionSession, tool_call_ids: list[str]
    ) -> LookupOutcome:
        if not tool_call_ids:
            return LookupOutcome(found={})
        try:
            artifacts = await self._ledger.batch_get(session.scope, tool_call_ids)
        except Exception as exc:
            self._logger.warning(
                "artifact_batch_lookup_failed", id_count=len(tool_call_ids), error=str(exc)
            )
            return LookupOutcome(found={}, failed=True)
        return LookupOutcome(found={a.tool_call_id: a for a in artifacts})

    def _process_tool_result(
        self,
        block: ToolResultBlock,
        session: CompressionSession,
        lookup: LookupOutcome,
    ) -> ArtifactInfo | None:
        tool_call_id = block.tool_call_id
        if is_internal_tool(block.tool_name):
            self._processed[tool_call_id] = None
            return None

        if tool_call_id in self._processed:
            # Handled on an earlier pass; hand back what was produced then.
            return self._processed[tool_call_id]

        existing = lookup.found.get(tool_call_id)
        if existing is not None:
            return ArtifactInfo(
                artifact_id=existing.artifact_id,
                is_oversized=existing.is_oversized,
                tool_args=existing.tool_args,
                summary_data=existing.summary_data,
            )

        return self._create_artifact(block, session)

    def _create_artifact(
        self, block: ToolResultBlock, session: CompressionSession
    ) -> ArtifactInfo | None:
        tool_call_id = block.tool_call_id
        artifact_id = make_artifact_id(block.tool_name, tool_call_id)
        raw_input = block.input if block.input is not None else self._tool_inputs.get(tool_call_id)
        tool_input = to_json_safe(raw_input)
        data = {
            "toolName": block.tool_name,
            "toolInput": tool_input,
            "toolResult": to_json_safe(remove_structure_hints(block.output)),
            "compressedAt": datetime.now(UTC).isoformat(),
        }
        if is_empty_result(data):
            self._logger.debug("empty_tool_result_skipped", tool_call_id=tool_call_id)
            return None

        oversized = detect_oversized(
            data,
            self._context_window_size,
            artifact_id=artifact_id,
            tool_call_id=tool_call_id,
            tool_name=block.tool_name,
            estimator=self._estimator,
        )

        summary_data: dict[str, Any] = {
            "toolCallId": tool_call_id,
            "toolName": block.tool_name,
            "toolInput": generate_preview(tool_input),
            "resultPreview": generate_preview(data["toolResult"]),
            "note": f"Tool result from {block.tool_name} - compressed to save context space",
        }
        if oversized.is_oversized:
            summary_data["_oversizedWarning"] = oversized.warning
            summary_data["_structureInfo"] = oversized.structure_info

        record = ArtifactRecord(
            artifact_id=artifact_id,
            task_id=f"task_{session.conversation_id}-{session.id}",
            tool_call_id=tool_call_id,
            tenant_id=session.tenant_id,
            project_id=session.project_id,
            context_id=session.conversation_id,
            sub_agent_id=session.id,
            metadata=ArtifactMetadata(
                tool_call_id=tool_call_id,
                tool_name=block.tool_name,
                tool_args=tool_input,
                compression_reason=self._compression_reason,
                is_oversized=oversized.is_oversized,
                original_token_size=oversized.original_token_size,
                context_window_size=oversized.context_window_size,
                retrieval_blocked=oversized.retrieval_blocked,
            ),
            summary_data=summary_data,
            data=data,
        )

        session.record_event(
            DistillateEvent.ARTIFACT_SAVED, session.id, record.model_dump(mode="json")
        )

        info = ArtifactInfo(
            artifact_id=artifact_id,
            is_oversized=oversized.is_oversized,
            tool_args=tool_input,
            structure_info=oversized.structure_info,
            oversized_warning=oversized.warning,
            summary_data=summary_data,
        )
        self._processed[tool_call_id] = info
        self._logger.info(
            "artifact_saved",
            artifact_id=artifact_id,
            tool_call_id=tool_call_id,
            tool_name=block.tool_name,
            is_oversized=oversized.is_oversized,
        )
        return info
