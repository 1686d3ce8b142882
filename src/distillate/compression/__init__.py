"""Compression policy, strategies, summarization and the safe-compression wrapper."""

from distillate.compression.distill import distill_conversation, distill_conversation_history
from distillate.compression.orchestrator import SummarizationOrchestrator
from distillate.compression.policy import CompressionPolicy
from distillate.compression.safe import fallback_truncate, safe_compress
from distillate.compression.strategies import (
    CompressionStrategy,
    ConversationStrategy,
    MidGenerationStrategy,
)
from distillate.compression.transcript import format_transcript

__all__ = [
    "CompressionPolicy",
    "CompressionStrategy",
    "ConversationStrategy",
    "MidGenerationStrategy",
    "SummarizationOrchestrator",
    "distill_conversation",
    "distill_conversation_history",
    "fallback_truncate",
    "format_transcript",
    "safe_compress",
]
