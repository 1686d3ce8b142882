"""distillate data models."""

from distillate.models.artifact import (
    ArtifactInfo,
    ArtifactMetadata,
    ArtifactRecord,
    ArtifactScope,
    ExistingArtifact,
    OversizedInfo,
)
from distillate.models.config import (
    CompressionConfig,
    DistillateConfig,
    LedgerConfig,
    ModelInfo,
)
from distillate.models.message import (
    ContentBlock,
    Message,
    TextBlock,
    ToolCallBlock,
    ToolResultBlock,
    normalize_legacy_message,
)
from distillate.models.result import CompressionEvent, CompressionResult, CompressionType
from distillate.models.summary import (
    ConversationHistorySummary,
    ConversationSummary,
    NextSteps,
    RelatedArtifact,
    fallback_history_summary,
    fallback_summary,
)

__all__ = [
    # Config
    "CompressionConfig",
    "DistillateConfig",
    "LedgerConfig",
    "ModelInfo",
    # Messages
    "ContentBlock",
    "Message",
    "TextBlock",
    "ToolCallBlock",
    "ToolResultBlock",
    "normalize_legacy_message",
    # Artifacts
    "ArtifactInfo",
    "ArtifactMetadata",
    "ArtifactRecord",
    "ArtifactScope",
    "ExistingArtifact",
    "OversizedInfo",
    # Summaries
    "ConversationSummary",
    "ConversationHistorySummary",
    "NextSteps",
    "RelatedArtifact",
    "fallback_summary",
    "fallback_history_summary",
    # Results
    "CompressionEvent",
    "CompressionResult",
    "CompressionType",
]
