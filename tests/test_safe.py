"""Tests for safe_compress and the truncation fallback."""

from __future__ import annotations

import pytest
from opentelemetry.trace import StatusCode

from distillate.compression.policy import CompressionPolicy
from distillate.compression.safe import SPAN_NAME, fallback_truncate
from distillate.events.bus import DistillateEvent
from distillate.models.message import Message, ToolCallBlock, ToolResultBlock


def _text(tokens: int, label: str = "x") -> Message:
    return Message(role="user", content=label * (tokens * 4))


def _tool_exchange(call_id: str) -> list[Message]:
    return [
        Message(
            role="assistant",
            content=[ToolCallBlock(tool_call_id=call_id, tool_name="search", input={"q": call_id})],
        ),
        Message(
            role="tool",
            content=[ToolResultBlock(tool_call_id=call_id, tool_name="search", output="found")],
        ),
    ]


@pytest.fixture
def traced_policy(manager, session, config, span_exporter):
    _, tracer = span_exporter
    return CompressionPolicy.for_mode(
        "mid_generation",
        session_id=session.id,
        sessions=manager,
        config=config,
        tracer=tracer,
    )


@pytest.fixture
def broken_policy(traced_policy):
    async def boom(policy, messages):
        raise RuntimeError("summarizer exploded")

    traced_policy.strategy.compress = boom
    return traced_policy


class TestFallbackTruncate:
    def test_drops_oldest_until_half_hard_limit(self, estimator):
        messages = [_text(200, label) for label in "abcd"]
        kept = fallback_truncate(messages, 1_000, estimator)

        assert kept == messages[2:]
        assert estimator.context_size(kept) <= 500

    def test_window_that_fits_is_returned_untouched(self, estimator):
        messages = [_text(100), _text(100)]
        assert fallback_truncate(messages, 1_000, estimator) is messages

    def test_empty_input(self, estimator):
        assert fallback_truncate([], 1_000, estimator) == []

    def test_always_keeps_last_message(self, estimator):
        messages = [_text(2_000), _text(3_000, "y")]
        kept = fallback_truncate(messages, 1_000, estimator)
        assert kept == messages[1:]

    def test_input_list_not_mutated(self, estimator):
        messages = [_text(400), _text(400)]
        fallback_truncate(messages, 1_000, estimator)
        assert len(messages) == 2


class TestSafeCompressFallback:
    async def test_strategy_failure_truncates(self, broken_policy, estimator):
        messages = [_text(200, label) for label in "abcd"]
        result = await broken_policy.safe_compress(messages)

        assert result.is_fallback is True
        assert result.artifact_ids == []
        assert result.summary == messages[2:]
        assert estimator.context_size(result.summary) <= 500

    async def test_fallback_on_empty_window(self, broken_policy):
        result = await broken_policy.safe_compress([])
        assert result.summary == []
        assert result.artifact_ids == []

    async def test_fallback_event_recorded(self, broken_policy, event_bus):
        await broken_policy.safe_compress([_text(200, label) for label in "abcd"])
        fallbacks = [
            p for e, p in event_bus.collected if e == DistillateEvent.COMPRESSION_FALLBACK
        ]
        assert fallbacks == [
            {
                "session_id": "sess_TEST01",
                "error": "summarizer exploded",
                "original_count": 4,
                "compressed_count": 2,
            }
        ]

    async def test_span_marks_error_but_status_ok(self, broken_policy, span_exporter):
        exporter, _ = span_exporter
        await broken_policy.safe_compress([_text(200, label) for label in "abcd"])

        (span,) = exporter.get_finished_spans()
        assert span.name == SPAN_NAME
        assert span.status.status_code == StatusCode.OK
        assert span.attributes["compression.error"] == "summarizer exploded"
        assert span.attributes["compression.success"] is True
        assert span.attributes["compression.result.artifact_count"] == 0
        assert span.attributes["compression.result.output_tokens"] == 400
        assert span.attributes["compression.result.compression_ratio"] == pytest.approx(0.5)


class TestSafeCompressSuccess:
    async def test_returns_strategy_result(self, traced_policy, mock_llm):
        result = await traced_policy.safe_compress(_tool_exchange("c1"))
        assert result.is_fallback is False
        assert len(result.artifact_ids) == 1

    async def test_span_attributes(self, traced_policy, span_exporter, mock_llm):
        exporter, _ = span_exporter
        messages = _tool_exchange("c1")
        result = await traced_policy.safe_compress(messages, full_context_size=5_000)

        (span,) = exporter.get_finished_spans()
        attrs = span.attributes
        assert span.name == "compressor.safe_compress"
        assert span.status.status_code == StatusCode.OK
        assert attrs["compression.type"] == "mid_generation"
        assert attrs["compression.session_id"] == "sess_TEST01"
        assert attrs["compression.message_count"] == 2
        assert attrs["compression.input_tokens"] == traced_policy.context_size(messages)
        assert attrs["compression.full_context_size"] == 5_000
        assert attrs["compression.hard_limit"] == 1_000
        assert attrs["compression.safety_buffer"] == 200
        assert attrs["compression.result.artifact_count"] == 1
        assert attrs["compression.result.summary"] == "Conversation conv_TEST01 in progress."
        assert attrs["compression.success"] is True
        assert "compression.error" not in attrs

        output_tokens = traced_policy.estimator.estimate(result.summary)
        assert attrs["compression.result.output_tokens"] == output_tokens
        assert attrs["compression.result.compression_ratio"] == pytest.approx(
            (5_000 - output_tokens) / 5_000
        )

    async def test_full_context_size_omitted_when_absent(
        self, traced_policy, span_exporter, mock_llm
    ):
        exporter, _ = span_exporter
        await traced_policy.safe_compress(_tool_exchange("c1"))
        (span,) = exporter.get_finished_spans()
        assert "compression.full_context_size" not in span.attributes

    async def test_no_fallback_event_on_success(self, traced_policy, event_bus, mock_llm):
        await traced_policy.safe_compress(_tool_exchange("c1"))
        kinds = [e for e, _ in event_bus.collected]
        assert DistillateEvent.COMPRESSION in kinds
        assert DistillateEvent.COMPRESSION_FALLBACK not in kinds
