"""Errors that propagate out of the compression engine.

Only caller mistakes and a missing session are raised. Degraded runtime paths
(artifact lookup failures, summarisation failures, strategy failures inside
``safe_compress``) are absorbed and never surface as exceptions.
"""

from __future__ import annotations


class DistillateError(Exception):
    """Base class for distillate errors."""


class MissingSessionError(DistillateError):
    """Raised when the session owning a compression policy no longer exists."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"No session found: {session_id!r}")
        self.session_id = session_id


class SummarizerConfigError(DistillateError):
    """Raised when a strategy that needs a summarizer model is built without one."""


class UnsupportedOperationError(DistillateError):
    """Raised when an operation is not offered by the active compression strategy."""
