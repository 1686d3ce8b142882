"""Tool-result eviction: artifact creation, oversized detection, previews."""

from distillate.artifacts.manager import ArtifactManager, LookupOutcome, extract_tool_call_ids
from distillate.artifacts.oversized import describe_structure, detect_oversized
from distillate.artifacts.utils import generate_preview, is_internal_tool, remove_structure_hints

__all__ = [
    "ArtifactManager",
    "LookupOutcome",
    "describe_structure",
    "detect_oversized",
    "extract_tool_call_ids",
    "generate_preview",
    "is_internal_tool",
    "remove_structure_hints",
]
