"""Sessions: the owner of a compression policy and its event log."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

import structlog
from ulid import ULID

from distillate.events.bus import DistillateEvent, EventBus
from distillate.events.payloads import SessionClosedPayload, SessionCreatedPayload
from distillate.models.artifact import ArtifactScope
from distillate.models.config import DistillateConfig
from distillate.models.result import CompressionType
from distillate.store.ledger import ArtifactLedger, InMemoryArtifactLedger

if TYPE_CHECKING:
    from distillate.compression.policy import CompressionPolicy


def make_id(prefix: str) -> str:
    """
    Generate a ULID-based sortable identifier.

    Args:
        prefix: Short prefix for readability (e.g. ``"sess"``, ``"conv"``).

    Returns:
        ID string in the format ``"{prefix}_{ulid}"``.
    """
    return f"{prefix}_{ULID()}"


class RecordedEvent(NamedTuple):
    """One entry of a session's event log."""

    kind: str
    session_id: str
    payload: dict[str, Any]


class CompressionSession:
    """
    One in-memory agent session.

    The session is the single writer for its compression policies and the
    sink for everything they record. Recorded events are appended to
    :attr:`events` and published on the session's :class:`EventBus`, which is
    how an attached :class:`~distillate.store.ledger.SQLiteArtifactLedger`
    learns about new artifacts.
    """

    def __init__(
        self,
        session_id: str,
        *,
        conversation_id: str,
        tenant_id: str,
        project_id: str,
        event_bus: EventBus,
    ) -> None:
        self._session_id = session_id
        self._conversation_id = conversation_id
        self._tenant_id = tenant_id
        self._project_id = project_id
        self._event_bus = event_bus
        self._events: list[RecordedEvent] = []
        self._policies: dict[str, CompressionPolicy] = {}
        self._logger = structlog.get_logger("distillate.session").bind(session_id=session_id)

    @property
    def id(self) -> str:
        return self._session_id

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    @property
    def project_id(self) -> str:
        return self._project_id

    @property
    def scope(self) -> ArtifactScope:
        return ArtifactScope(tenant_id=self._tenant_id, project_id=self._project_id)

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def events(self) -> list[RecordedEvent]:
        """Everything recorded on this session, oldest first."""
        return list(self._events)

    def get_policy(self, mode: str) -> CompressionPolicy | None:
        return self._policies.get(mode)

    def attach_policy(self, mode: str, policy: CompressionPolicy) -> None:
        self._policies[mode] = policy

    def clear_policies(self) -> None:
        self._policies.clear()

    def record_event(self, kind: str, session_id: str, payload: dict[str, Any]) -> None:
        """
        Append an event to the session log and publish it.

        Args:
            kind: Event kind, e.g. ``"artifact_saved"`` or ``"compression"``.
            session_id: The session that produced the event.
            payload: JSON-like event body.
        """
        self._events.append(RecordedEvent(kind, session_id, payload))
        self._logger.debug("event_recorded", kind=kind)
        try:
            event = DistillateEvent(kind)
        except ValueError:
            # Unknown kinds stay in the log but have no subscribers.
            return
        self._event_bus.publish(event, payload)

    def subscribe(self, event: DistillateEvent, handler: Any) -> None:
        """Shorthand for ``session.event_bus.subscribe(event, handler)``."""
        self._event_bus.subscribe(event, handler)


class SessionManager:
    """
    Registry of live sessions and the policies they own.

    Usage::

        manager = SessionManager(DistillateConfig(summarizer_model="openai/gpt-4o-mini"))
        session = manager.create_session(
            conversation_id="conv_1", tenant_id="acme", project_id="support"
        )
        policy = manager.policy_for(session.id)          # mid-generation
        if policy.is_compression_needed(messages):
            result = await policy.safe_compress(messages)
    """

    def __init__(
        self,
        config: DistillateConfig | None = None,
        *,
        ledger: ArtifactLedger | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._config = config or DistillateConfig()
        self._ledger: ArtifactLedger = ledger if ledger is not None else InMemoryArtifactLedger()
        self._shared_bus = event_bus
        self._sessions: dict[str, CompressionSession] = {}
        self._logger = structlog.get_logger("distillate.session")

    @property
    def config(self) -> DistillateConfig:
        return self._config

    @property
    def ledger(self) -> ArtifactLedger:
        return self._ledger

    def create_session(
        self,
        *,
        conversation_id: str,
        tenant_id: str,
        project_id: str,
        session_id: str | None = None,
    ) -> CompressionSession:
        """
        Register a new session.

        Args:
            conversation_id: Conversation the session belongs to.
            tenant_id: Tenant scope for artifact lookups.
            project_id: Project scope for artifact lookups.
            session_id: Explicit id. Generated when omitted.

        Raises:
            ValueError: If ``session_id`` is already registered.
        """
        sid = session_id or make_id("sess")
        if sid in self._sessions:
            raise ValueError(f"Session already exists: {sid!r}")
        session = CompressionSession(
            sid,
            conversation_id=conversation_id,
            tenant_id=tenant_id,
            project_id=project_id,
            event_bus=self._shared_bus or EventBus(),
        )
        self._sessions[sid] = session
        created: SessionCreatedPayload = {
            "session_id": sid,
            "conversation_id": conversation_id,
            "tenant_id": tenant_id,
            "project_id": project_id,
        }
        session.record_event(DistillateEvent.SESSION_CREATED, sid, dict(created))
        self._logger.info("session_created", session_id=sid, conversation_id=conversation_id)
        return session

    def get_session(self, session_id: str) -> CompressionSession | None:
        return self._sessions.get(session_id)

    def end_session(self, session_id: str) -> None:
        """Drop a session and its policies. No-op for unknown ids."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        closed: SessionClosedPayload = {"session_id": session_id}
        session.record_event(DistillateEvent.SESSION_CLOSED, session_id, dict(closed))
        session.clear_policies()
        self._logger.info("session_closed", session_id=session_id)

    def policy_for(
        self,
        session_id: str,
        mode: CompressionType = "mid_generation",
    ) -> CompressionPolicy:
        """
        Return the session's policy for *mode*, creating it on first use.

        Raises:
            KeyError: If the session is not registered.
            SummarizerConfigError: If ``mode`` is ``"conversation_level"`` and
                no summarizer model is configured.
        """
        from distillate.compression.policy import CompressionPolicy

        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"No session found: {session_id!r}")
        policy = session.get_policy(mode)
        if policy is None:
            policy = CompressionPolicy.for_mode(
                mode,
                session_id=session_id,
                sessions=self,
                config=self._config,
                ledger=self._ledger,
            )
            session.attach_policy(mode, policy)
        return policy
