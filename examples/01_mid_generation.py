"""
Example 01: Mid-Generation Compression
======================================

Demonstrates the in-flight compression loop of an agent session:
- Creating a session through SessionManager
- Appending tool-call / tool-result turns to a growing window
- Checking is_compression_needed() after every turn
- Running safe_compress() and inspecting the evicted artifacts and summary
- Persisting artifacts with SQLiteArtifactLedger

Run without an API key:
    DISTILLATE_MOCK_LLM=1 uv run python examples/01_mid_generation.py

Run with a real LLM (set your API key first):
    OPENAI_API_KEY=sk-... uv run python examples/01_mid_generation.py
"""

import asyncio
import json
import sys
from pathlib import Path

# Add project root to path when running directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def fake_search(query: str) -> dict:
    """Stand-in for a real tool: returns a bulky result."""
    return {
        "query": query,
        "hits": [
            {"title": f"{query} result {i}", "snippet": "lorem ipsum " * 40} for i in range(10)
        ],
    }


async def main() -> None:
    from distillate import (
        CompressionConfig,
        DistillateConfig,
        LedgerConfig,
        Message,
        SessionManager,
        SQLiteArtifactLedger,
        ToolCallBlock,
        ToolResultBlock,
    )

    print("=== distillate Mid-Generation Example ===\n")

    # Small limits so compression fires after a few tool calls
    config = DistillateConfig(
        compression=CompressionConfig(hard_limit=6_000, safety_buffer=1_500),
        ledger=LedgerConfig(db_path="/tmp/distillate_example_01.db"),
        summarizer_model="openai/gpt-4o-mini",
        base_model="anthropic/claude-sonnet-4-5",
    )

    ledger = SQLiteArtifactLedger(config.ledger)
    await ledger.initialize()
    try:
        manager = SessionManager(config, ledger=ledger)
        session = manager.create_session(
            conversation_id="conv_demo", tenant_id="acme", project_id="support"
        )
        ledger.attach(session.event_bus)
        policy = manager.policy_for(session.id)
        print(f"Session created: {session.id}")
        print(f"Trigger point: {config.compression.trigger_point:,} tokens\n")

        messages = [Message(role="user", content="Research travel options for Oslo.")]
        queries = ["oslo flights", "oslo hotels", "oslo weather", "oslo museums", "oslo food"]

        for i, query in enumerate(queries, 1):
            call_id = f"call_{i}"
            messages.append(
                Message(
                    role="assistant",
                    content=[
                        ToolCallBlock(tool_call_id=call_id, tool_name="search", input={"q": query})
                    ],
                )
            )
            messages.append(
                Message(
                    role="tool",
                    content=[
                        ToolResultBlock(
                            tool_call_id=call_id, tool_name="search", output=fake_search(query)
                        )
                    ],
                )
            )
            size = policy.context_size(messages)
            print(f"Turn {i}: {query!r} -> context {size:,} tokens")

            if policy.is_compression_needed(messages):
                result = await policy.safe_compress(messages)
                print(f"  Compressed: {len(result.artifact_ids)} artifact(s) evicted")
                if not result.is_fallback:
                    print(f"  Summary: {result.summary.high_level}")

        await ledger.wait_for_pending_writes()

        print("\n--- Policy state ---")
        state = policy.get_state()
        print(f"Processed tool calls: {state['processed_tool_calls']}")
        print(f"Last processed index: {state['last_processed_message_index']}")

        summary = policy.get_compression_summary()
        if summary is not None:
            print("\n--- Cumulative summary ---")
            print(json.dumps(summary.model_dump(), indent=2))

        manager.end_session(session.id)
    finally:
        await ledger.close()


if __name__ == "__main__":
    asyncio.run(main())
