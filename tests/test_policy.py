"""Tests for CompressionPolicy and its strategies."""

from __future__ import annotations

import pytest

from distillate.compression.policy import CompressionPolicy
from distillate.compression.strategies import ConversationStrategy, MidGenerationStrategy
from distillate.errors import MissingSessionError, SummarizerConfigError, UnsupportedOperationError
from distillate.events.bus import DistillateEvent
from distillate.models.config import CompressionConfig
from distillate.models.message import Message, ToolCallBlock, ToolResultBlock
from distillate.models.summary import ConversationHistorySummary, ConversationSummary


def _text(tokens: int, role: str = "user") -> Message:
    """A message estimated at exactly ``tokens`` tokens."""
    return Message(role=role, content="x" * (tokens * 4))


def _tool_exchange(call_id: str) -> list[Message]:
    return [
        Message(
            role="assistant",
            content=[ToolCallBlock(tool_call_id=call_id, tool_name="search", input={"q": call_id})],
        ),
        Message(
            role="tool",
            content=[
                ToolResultBlock(
                    tool_call_id=call_id, tool_name="search", output={"hits": [call_id]}
                )
            ],
        ),
    ]


def _events(event_bus, kind: DistillateEvent) -> list[dict]:
    return [p for e, p in event_bus.collected if e == kind]


@pytest.fixture
def policy(manager, session):
    return manager.policy_for(session.id, "mid_generation")


@pytest.fixture
def history_policy(manager, session):
    return manager.policy_for(session.id, "conversation_level")


class TestThreshold:
    """hard_limit=1000, safety_buffer=200: compression fires at 800 tokens."""

    def test_below_trigger(self, policy):
        assert policy.is_compression_needed([_text(799)]) is False

    def test_at_trigger(self, policy):
        assert policy.is_compression_needed([_text(800)]) is True

    def test_above_trigger(self, policy):
        assert policy.is_compression_needed([_text(500), _text(400)]) is True

    def test_empty_window(self, policy):
        assert policy.is_compression_needed([]) is False

    def test_history_strategy_uses_same_threshold(self, history_policy):
        assert history_policy.is_compression_needed([_text(799)]) is False
        assert history_policy.is_compression_needed([_text(800)]) is True

    def test_hard_limit_property(self, policy):
        assert policy.hard_limit == 1_000


class TestManualCompression:
    def test_manual_trigger_short_circuits(self, policy):
        policy.request_manual_compression("user asked")
        assert policy.is_compression_needed([]) is True

    def test_manual_request_recorded(self, policy, event_bus):
        policy.request_manual_compression()
        requested = _events(event_bus, DistillateEvent.COMPRESSION_REQUESTED)
        assert requested == [{"session_id": "sess_TEST01", "reason": "Manual request from LLM"}]

    async def test_compress_clears_trigger_and_records_manual(self, policy, event_bus, mock_llm):
        policy.request_manual_compression("tool asked")
        await policy.compress([_text(10)])

        assert policy.is_compression_needed([_text(10)]) is False
        (event,) = _events(event_bus, DistillateEvent.COMPRESSION)
        assert event["reason"] == "manual"

    def test_unsupported_on_conversation_level(self, history_policy):
        with pytest.raises(UnsupportedOperationError):
            history_policy.request_manual_compression()


class TestMidGenerationCompress:
    async def test_compress_evicts_and_summarises(self, policy, event_bus, mock_llm):
        messages = [_text(100), *_tool_exchange("c1")]
        result = await policy.compress(messages)

        assert result.is_fallback is False
        assert len(result.artifact_ids) == 1
        assert isinstance(result.summary, ConversationSummary)
        assert result.summary.session_id == "conv_TEST01"
        assert policy.get_compression_summary() is result.summary

        (event,) = _events(event_bus, DistillateEvent.COMPRESSION)
        assert event["reason"] == "automatic"
        assert event["compression_type"] == "mid_generation"
        assert event["message_count"] == 3
        assert event["artifact_count"] == 1
        assert event["context_size_before"] == policy.context_size(messages)
        assert event["context_size_after"] == policy.estimator.estimate(result.summary)

    async def test_only_new_messages_processed(self, policy, ledger, mock_llm):
        messages = _tool_exchange("c1")
        await policy.compress(messages)
        assert policy.strategy.last_processed_message_index == 2

        messages += _tool_exchange("c2")
        result = await policy.compress(messages)

        assert ledger.batch_calls[-1] == ["c2"]
        assert len(result.artifact_ids) == 1
        assert policy.strategy.last_processed_message_index == 4


class TestConversationLevelCompress:
    async def test_reprocesses_all_messages(self, history_policy, ledger, event_bus, mock_llm):
        messages = _tool_exchange("c1")
        first = await history_policy.compress(messages)

        messages += _tool_exchange("c2")
        second = await history_policy.compress(messages)

        assert ledger.batch_calls[-1] == ["c1", "c2"]
        assert len(first.artifact_ids) == 1
        assert len(second.artifact_ids) == 1
        assert first.artifact_ids[0] not in second.artifact_ids
        assert second.artifact_ids[0].startswith("compress_search_c2_")
        assert isinstance(second.summary, ConversationHistorySummary)

        events = _events(event_bus, DistillateEvent.COMPRESSION)
        assert [e["compression_type"] for e in events] == ["conversation_level"] * 2
        assert [e["artifact_count"] for e in events] == [1, 1]
        assert len(_events(event_bus, DistillateEvent.ARTIFACT_SAVED)) == 2

    async def test_unchanged_history_produces_no_artifacts(self, history_policy, mock_llm):
        messages = _tool_exchange("c1")
        await history_policy.compress(messages)
        again = await history_policy.compress(messages)
        assert again.artifact_ids == []

    def test_requires_summarizer_model(self, manager, session, config):
        manager._config = config.model_copy(update={"summarizer_model": None})
        with pytest.raises(SummarizerConfigError):
            manager.policy_for(session.id, "conversation_level")

    def test_strategy_rejects_blank_model(self):
        with pytest.raises(SummarizerConfigError):
            ConversationStrategy("   ")


class TestCleanup:
    async def test_partial_cleanup_keeps_recent_fifty(self, policy, mock_llm):
        messages = []
        for i in range(100):
            messages += _tool_exchange(f"call_{i:03d}")
        await policy.compress(messages)
        summary = policy.get_compression_summary()
        assert len(policy.processed_tool_calls) == 100

        policy.partial_cleanup()

        assert policy.processed_tool_calls == [f"call_{i:03d}" for i in range(50, 100)]
        assert policy.get_compression_summary() is summary

    async def test_full_cleanup_resets(self, policy, mock_llm):
        await policy.compress(_tool_exchange("c1"))
        policy.full_cleanup()
        assert policy.processed_tool_calls == []
        assert policy.get_compression_summary() is None

    async def test_cleanup_options(self, policy, mock_llm):
        messages = _tool_exchange("c1") + _tool_exchange("c2") + _tool_exchange("c3")
        await policy.compress(messages)
        policy.cleanup(keep_recent_tool_calls=1)
        assert policy.processed_tool_calls == ["c3"]
        assert policy.get_compression_summary() is not None


class TestState:
    async def test_get_state_snapshot(self, policy, mock_llm):
        await policy.compress(_tool_exchange("c1"))
        state = policy.get_state()

        assert state["compression_type"] == "mid_generation"
        assert state["config"] == {"hard_limit": 1_000, "safety_buffer": 200, "enabled": True}
        assert state["processed_tool_calls"] == ["c1"]
        assert state["cumulative_summary"]["type"] == "conversation_summary_v1"
        assert state["last_processed_message_index"] == 2
        assert state["manual_trigger"] is False

    def test_initial_state(self, policy):
        state = policy.get_state()
        assert state["processed_tool_calls"] == []
        assert state["cumulative_summary"] is None


class TestConstruction:
    def test_missing_session_rejected(self, manager, ledger):
        with pytest.raises(MissingSessionError):
            CompressionPolicy(
                session_id="sess_GONE",
                sessions=manager,
                config=CompressionConfig(),
                strategy=MidGenerationStrategy(),
                ledger=ledger,
            )

    def test_context_window_seeded_from_base_model(self, policy):
        assert policy.context_window_size == 200_000

    def test_unknown_base_model_disables_oversized_detection(self, manager, session, ledger):
        policy = CompressionPolicy(
            session_id=session.id,
            sessions=manager,
            config=CompressionConfig(),
            strategy=MidGenerationStrategy(),
            ledger=ledger,
            base_model="acme/unknown-model",
        )
        assert policy.context_window_size is None

    async def test_compress_after_session_end_raises(self, manager, session, policy):
        manager.end_session(session.id)
        with pytest.raises(MissingSessionError):
            await policy.compress(_tool_exchange("c1"))


class TestBrokenSubscriber:
    @staticmethod
    def _break_artifact_saved(session):
        def broken(event, payload):
            raise RuntimeError("subscriber down")

        session.subscribe(DistillateEvent.ARTIFACT_SAVED, broken)

    async def test_compress_survives_failing_subscriber(self, policy, session, mock_llm):
        self._break_artifact_saved(session)
        result = await policy.compress(_tool_exchange("c1"))

        assert result.is_fallback is False
        assert len(result.artifact_ids) == 1
        assert policy.artifacts.processed_tool_calls == ["c1"]

    async def test_safe_compress_keeps_artifacts(self, policy, session, mock_llm):
        self._break_artifact_saved(session)
        result = await policy.safe_compress(_tool_exchange("c1"))

        assert result.is_fallback is False
        assert len(result.artifact_ids) == 1

    async def test_no_duplicate_artifact_on_next_pass(
        self, history_policy, session, event_bus, mock_llm
    ):
        self._break_artifact_saved(session)
        messages = _tool_exchange("c1")
        await history_policy.compress(messages)
        await history_policy.compress(messages)

        assert len(_events(event_bus, DistillateEvent.ARTIFACT_SAVED)) == 1
