"""Total compression entry point: trace the pass, fall back to truncation on failure."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import structlog
from opentelemetry.trace import Status, StatusCode

from distillate.models.message import Message
from distillate.models.result import CompressionResult
from distillate.tokens.estimator import TokenEstimator
from distillate.tracing import get_tracer, set_attributes

if TYPE_CHECKING:
    from distillate.compression.policy import CompressionPolicy

logger = structlog.get_logger("distillate.safe")

# Fallback trims the window to this share of the hard limit.
FALLBACK_TARGET_FRACTION: float = 0.5

SPAN_NAME = "compressor.safe_compress"


def fallback_truncate(
    messages: list[Message], hard_limit: int, estimator: TokenEstimator
) -> list[Message]:
    """
    Drop the oldest messages until the window fits half the hard limit.

    At least one message is always kept, so the loop ends after at most
    ``len(messages) - 1`` drops. No I/O.

    Returns:
        ``messages`` itself when it already fits, otherwise a trimmed copy.
    """
    if not messages:
        return []

    target = math.floor(hard_limit * FALLBACK_TARGET_FRACTION)
    total = estimator.context_size(messages)
    if total <= target:
        return messages

    kept = list(messages)
    while total > target and len(kept) > 1:
        dropped = kept.pop(0)
        total -= estimator.estimate_message(dropped)
    return kept


def _output_tokens(result: CompressionResult, estimator: TokenEstimator) -> int:
    if isinstance(result.summary, list):
        return estimator.context_size(result.summary)
    return estimator.estimate(result.summary)


def _ratio(input_tokens: int, output_tokens: int) -> float:
    return (input_tokens - output_tokens) / input_tokens if input_tokens > 0 else 0.0


async def safe_compress(
    policy: CompressionPolicy,
    messages: list[Message],
    full_context_size: int | None = None,
) -> CompressionResult:
    """
    Run the policy's strategy inside a ``compressor.safe_compress`` span.

    If the strategy raises, the error is logged and recorded on the span and
    :func:`fallback_truncate` produces the result instead: no artifacts, and
    the surviving raw messages as the ``summary``. The span status is OK in
    both cases because the caller always receives a usable result.

    Args:
        policy: The session's compression policy.
        messages: Current context window.
        full_context_size: Caller's own measure of the input size. Used for
            the compression ratio when given.

    Returns:
        A CompressionResult. Never raises.
    """
    estimator = policy.estimator
    tracer = policy.tracer or get_tracer()
    input_tokens = policy.context_size(messages)
    log = logger.bind(session_id=policy.session_id, compression_type=policy.compression_type)

    with tracer.start_as_current_span(SPAN_NAME) as span:
        set_attributes(
            span,
            {
                "compression.type": policy.compression_type,
                "compression.session_id": policy.session_id,
                "compression.message_count": len(messages),
                "compression.input_tokens": input_tokens,
                "compression.full_context_size": full_context_size,
                "compression.hard_limit": policy.hard_limit,
                "compression.safety_buffer": policy.config.safety_buffer,
            },
        )
        baseline = full_context_size if full_context_size is not None else input_tokens

        try:
            result = await policy.compress(messages)
        except Exception as exc:
            log.error("compression_failed_using_fallback", error=str(exc))
            span.set_attribute("compression.error", str(exc))

            kept = fallback_truncate(messages, policy.hard_limit, estimator)
            result = CompressionResult(artifact_ids=[], summary=kept)
            log.info(
                "compression_fallback_completed",
                original_count=len(messages),
                compressed_count=len(kept),
            )
            policy.record_fallback(str(exc), len(messages), len(kept))
        else:
            summary = result.summary
            high_level = getattr(summary, "high_level", None)
            if high_level:
                span.set_attribute("compression.result.summary", high_level)

        output_tokens = _output_tokens(result, estimator)
        set_attributes(
            span,
            {
                "compression.result.artifact_count": len(result.artifact_ids),
                "compression.result.output_tokens": output_tokens,
                "compression.result.compression_ratio": _ratio(baseline, output_tokens),
                "compression.success": True,
            },
        )
        span.set_status(Status(StatusCode.OK))
        return result
