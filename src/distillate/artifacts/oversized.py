"""Oversized-payload detection for artifacts that must never re-enter context."""

from __future__ import annotations

from typing import Any

import structlog

from distillate.models.artifact import OversizedInfo
from distillate.tokens.estimator import TokenEstimator

logger = structlog.get_logger("distillate.artifacts.oversized")

# A single artifact may take at most 30 % of the producing model's window.
MAX_SAFE_CONTEXT_FRACTION: float = 0.30

_MAX_KEYS_LISTED: int = 10

_estimator = TokenEstimator()


def describe_structure(payload: Any) -> str:
    """Return a one-line description of the shape of *payload*."""
    if isinstance(payload, (list, tuple)):
        return f"Array with {len(payload)} items"
    if isinstance(payload, dict):
        keys = [str(k) for k in payload]
        listed = ", ".join(keys[:_MAX_KEYS_LISTED])
        if len(keys) > _MAX_KEYS_LISTED:
            listed += ", ..."
        return f"Object with {len(keys)} keys: {listed}"
    if isinstance(payload, str):
        lines = payload.count("\n") + 1
        return f"String: {len(payload)} characters, {lines} lines"
    return f"{_type_name(payload)} value"


def _type_name(payload: Any) -> str:
    if payload is None:
        return "null"
    if isinstance(payload, bool):
        return "boolean"
    if isinstance(payload, (int, float)):
        return "number"
    return type(payload).__name__


def detect_oversized(
    payload: Any,
    context_window_size: int | None = None,
    *,
    artifact_id: str | None = None,
    tool_call_id: str | None = None,
    tool_name: str | None = None,
    estimator: TokenEstimator | None = None,
) -> OversizedInfo:
    """
    Classify *payload* as oversized relative to a model's context window.

    A payload is oversized when its estimate exceeds
    ``floor(context_window_size * 0.30)``. Oversized payloads are still
    stored, but ``retrieval_blocked`` is set so they are never pulled back
    into the window.

    Args:
        payload: Candidate artifact data (any JSON-like value).
        context_window_size: Window of the producing model. ``None`` or 0
            means unknown, in which case nothing is oversized.
        artifact_id: Optional id, for logging only.
        tool_call_id: Optional id, for logging only.
        tool_name: Optional name, for logging only.
        estimator: Token estimator override.

    Returns:
        OversizedInfo. ``warning`` and ``structure_info`` are set only when
        the payload is oversized.
    """
    tokens = (estimator or _estimator).estimate(payload)

    if not context_window_size:
        return OversizedInfo(
            is_oversized=False,
            original_token_size=tokens,
            context_window_size=None,
            retrieval_blocked=False,
        )

    max_safe = int(context_window_size * MAX_SAFE_CONTEXT_FRACTION)
    is_oversized = tokens > max_safe
    if not is_oversized:
        return OversizedInfo(
            is_oversized=False,
            original_token_size=tokens,
            context_window_size=context_window_size,
            retrieval_blocked=False,
        )

    percent = round(tokens / context_window_size * 100)
    warning = (
        f"⚠️ OVERSIZED ARTIFACT: ~{round(tokens / 1000)}K tokens "
        f"({percent}% of context window) exceeds safe context limits. "
        "The full result is stored but cannot be retrieved into context; "
        "rely on this summary and the structure description instead."
    )
    structure = describe_structure(payload)

    logger.warning(
        "oversized_artifact_detected",
        artifact_id=artifact_id,
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        tokens=tokens,
        max_safe=max_safe,
        context_window_size=context_window_size,
    )

    return OversizedInfo(
        is_oversized=True,
        original_token_size=tokens,
        context_window_size=context_window_size,
        retrieval_blocked=True,
        warning=warning,
        structure_info=structure,
    )
