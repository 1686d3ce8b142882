"""In-process pub/sub for the events a compression session records."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

import structlog

Handler = Callable[["DistillateEvent", dict[str, Any]], None | Awaitable[None]]


class DistillateEvent(StrEnum):
    """Event kinds a :class:`~distillate.session.CompressionSession` publishes.

    Payload shapes are the TypedDicts in :mod:`distillate.events.payloads`:

    ``SESSION_CREATED``
        ``SessionCreatedPayload``: session, conversation, tenant and project ids.

    ``SESSION_CLOSED``
        ``SessionClosedPayload``: ``session_id``.

    ``ARTIFACT_SAVED``
        ``ArtifactSavedPayload``: the JSON dump of the new
        :class:`~distillate.models.artifact.ArtifactRecord`. Ledgers attach
        to this event to persist artifacts.

    ``COMPRESSION``
        ``CompressionPayload``: the dump of a
        :class:`~distillate.models.result.CompressionEvent`.

    ``COMPRESSION_REQUESTED``
        ``CompressionRequestedPayload``: ``session_id`` and ``reason``.

    ``COMPRESSION_FALLBACK``
        ``CompressionFallbackPayload``: the error and the message counts
        before and after truncation.
    """

    SESSION_CREATED = "session_created"
    SESSION_CLOSED = "session_closed"

    ARTIFACT_SAVED = "artifact_saved"

    COMPRESSION = "compression"
    COMPRESSION_REQUESTED = "compression_requested"
    COMPRESSION_FALLBACK = "compression_fallback"


class EventBus:
    """
    Fan-out of session events to subscribed handlers.

    Handlers receive ``(event, payload)``. A sync handler runs inside
    :meth:`publish`; a coroutine handler is scheduled on the running loop and
    kept in :attr:`pending` until it finishes. A failing handler is logged
    and never reaches the publisher, so a broken subscriber cannot abort a
    compression pass.

    Example::

        bus = EventBus()

        def on_artifact(event, payload):
            print(f"{payload['tool_call_id']} -> {payload['artifact_id']}")

        bus.subscribe(DistillateEvent.ARTIFACT_SAVED, on_artifact)
    """

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self._handlers: dict[DistillateEvent, list[Handler]] = {}
        self._wildcard: list[Handler] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._logger = logger or structlog.get_logger("distillate.events")

    @property
    def pending(self) -> int:
        """Number of async handler invocations still running."""
        return len(self._tasks)

    def subscribe(self, event: DistillateEvent, handler: Handler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Receive every event kind."""
        self._wildcard.append(handler)

    def unsubscribe(self, event: DistillateEvent, handler: Handler) -> None:
        """Remove *handler* from *event*. Unknown handlers are ignored."""
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def publish(self, event: DistillateEvent, payload: dict[str, Any]) -> None:
        """Deliver *payload* to the handlers of *event*, then to wildcard handlers."""
        for handler in [*self._handlers.get(event, ()), *self._wildcard]:
            try:
                outcome = handler(event, payload)
            except Exception as exc:
                self._log_failure(event, handler, exc)
                continue
            if asyncio.iscoroutine(outcome):
                self._schedule(event, handler, outcome)

    async def drain(self) -> None:
        """Wait for every scheduled async handler to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _schedule(self, event: DistillateEvent, handler: Handler, coro: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Published from sync code with no loop: the coroutine can never run.
            coro.close()
            self._logger.warning("event_handler_dropped_no_loop", event_kind=str(event))
            return
        task = loop.create_task(coro)
        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                self._log_failure(event, handler, t.exception())

        task.add_done_callback(_done)

    def _log_failure(self, event: DistillateEvent, handler: Handler, exc: BaseException) -> None:
        self._logger.error(
            "event_handler_error",
            event_kind=str(event),
            handler=getattr(handler, "__qualname__", repr(handler)),
            error=str(exc),
        )
