"""
Example 02: Conversation-Level Compression
==========================================

Demonstrates full-history compression between turns:
- Building a policy with the conversation_level strategy
- Loading legacy flat tool-result rows from a conversation database
- Observing compression and artifact events on the session's EventBus
- Reading the structured ConversationHistorySummary

Run without an API key:
    DISTILLATE_MOCK_LLM=1 uv run python examples/02_conversation_level.py
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def load_history() -> list[dict]:
    """Rows as a conversation database would return them."""
    rows: list[dict] = [{"role": "user", "content": "Why is the nightly build failing?"}]
    for i, path in enumerate(["build.log", "ci.yaml", "pyproject.toml"], 1):
        rows.append(
            {
                "role": "tool",
                "messageType": "tool-result",
                "content": {"text": f"contents of {path}\n" + "line\n" * 800},
                "metadata": {
                    "a2a_metadata": {
                        "toolName": "read_file",
                        "toolCallId": f"call_{i}",
                        "toolArgs": {"path": path},
                    }
                },
            }
        )
    rows.append({"role": "assistant", "content": "The lockfile pins an incompatible version."})
    return rows


async def main() -> None:
    from distillate import (
        CompressionConfig,
        DistillateConfig,
        DistillateEvent,
        Message,
        SessionManager,
    )

    print("=== distillate Conversation-Level Example ===\n")

    config = DistillateConfig(
        compression=CompressionConfig(hard_limit=2_000, safety_buffer=500),
        summarizer_model="anthropic/claude-haiku-4-5",
        base_model="anthropic/claude-sonnet-4-5",
    )
    manager = SessionManager(config)
    session = manager.create_session(
        conversation_id="conv_ci", tenant_id="acme", project_id="infra"
    )

    def on_event(event: DistillateEvent, payload: dict) -> None:
        if event == DistillateEvent.ARTIFACT_SAVED:
            print(f"  artifact saved: {payload['artifact_id']}")
        elif event == DistillateEvent.COMPRESSION:
            print(
                f"  compression: {payload['context_size_before']:,} -> "
                f"{payload['context_size_after']:,} tokens"
            )

    session.event_bus.subscribe_all(on_event)

    policy = manager.policy_for(session.id, "conversation_level")
    messages = [Message.model_validate(row) for row in load_history()]
    print(f"Loaded {len(messages)} messages, {policy.context_size(messages):,} tokens")

    if policy.is_compression_needed(messages):
        result = await policy.safe_compress(messages)
        if result.is_fallback:
            print(f"Fallback kept {len(result.summary)} message(s)")
        else:
            print(f"\nOverview: {result.summary.conversation_overview}")
            print(f"Primary goal: {result.summary.user_goals.primary}")
            print(f"Current state: {result.summary.context_for_continuation.current_state}")

    manager.end_session(session.id)


if __name__ == "__main__":
    asyncio.run(main())
