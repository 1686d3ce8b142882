"""
distillate: context compression for long-running LLM agent sessions.

Bulky tool outputs are evicted into an artifact ledger and raw history is
replaced by a progressively updated structured summary.

Primary entry point::

    from distillate import DistillateConfig, SessionManager

    manager = SessionManager(DistillateConfig(summarizer_model="openai/gpt-4o-mini"))
    session = manager.create_session(conversation_id="conv_1", tenant_id="t", project_id="p")
    policy = manager.policy_for(session.id)
    if policy.is_compression_needed(messages):
        result = await policy.safe_compress(messages)
"""

from distillate.artifacts.manager import ArtifactManager
from distillate.artifacts.oversized import detect_oversized
from distillate.artifacts.utils import generate_preview
from distillate.compression import (
    CompressionPolicy,
    CompressionStrategy,
    ConversationStrategy,
    MidGenerationStrategy,
    SummarizationOrchestrator,
    fallback_truncate,
    format_transcript,
    safe_compress,
)
from distillate.errors import (
    DistillateError,
    MissingSessionError,
    SummarizerConfigError,
    UnsupportedOperationError,
)
from distillate.events.bus import DistillateEvent, EventBus
from distillate.models import (
    ArtifactInfo,
    ArtifactRecord,
    ArtifactScope,
    CompressionConfig,
    CompressionEvent,
    CompressionResult,
    ConversationHistorySummary,
    ConversationSummary,
    DistillateConfig,
    LedgerConfig,
    Message,
    ModelInfo,
    OversizedInfo,
    TextBlock,
    ToolCallBlock,
    ToolResultBlock,
    normalize_legacy_message,
)
from distillate.session import CompressionSession, SessionManager, make_id
from distillate.store.ledger import ArtifactLedger, InMemoryArtifactLedger, SQLiteArtifactLedger
from distillate.tokens.estimator import TokenEstimator

__version__ = "0.1.0"

__all__ = [
    # Core
    "SessionManager",
    "CompressionSession",
    "CompressionPolicy",
    "make_id",
    # Strategies
    "CompressionStrategy",
    "MidGenerationStrategy",
    "ConversationStrategy",
    "SummarizationOrchestrator",
    "safe_compress",
    "fallback_truncate",
    "format_transcript",
    # Artifacts
    "ArtifactManager",
    "detect_oversized",
    "generate_preview",
    "ArtifactLedger",
    "InMemoryArtifactLedger",
    "SQLiteArtifactLedger",
    # Config
    "CompressionConfig",
    "DistillateConfig",
    "LedgerConfig",
    "ModelInfo",
    # Models
    "Message",
    "TextBlock",
    "ToolCallBlock",
    "ToolResultBlock",
    "normalize_legacy_message",
    "ArtifactInfo",
    "ArtifactRecord",
    "ArtifactScope",
    "OversizedInfo",
    "ConversationSummary",
    "ConversationHistorySummary",
    "CompressionEvent",
    "CompressionResult",
    # Events
    "EventBus",
    "DistillateEvent",
    # Errors
    "DistillateError",
    "MissingSessionError",
    "SummarizerConfigError",
    "UnsupportedOperationError",
    # Utilities
    "TokenEstimator",
]
