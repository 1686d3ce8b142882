"""Helpers shared by artifact creation: internal-tool filtering, previews, hint stripping."""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel

from distillate.tokens.estimator import to_text

# Tools whose results are plumbing rather than content and never become artifacts.
INTERNAL_TOOL_NAMES: frozenset[str] = frozenset(
    {"get_reference_artifact", "load_skill", "thinking_complete"}
)
INTERNAL_TOOL_PREFIX: str = "transfer_to_"
INTERNAL_TOOL_SUBSTRING: str = "save_tool_result"

STRUCTURE_HINTS_KEY: str = "_structureHints"

PREVIEW_MAX_CHARS: int = 150

_WHITESPACE = re.compile(r"\s+")


def is_internal_tool(tool_name: str | None) -> bool:
    """Return True for tool names that must never be materialised as artifacts."""
    if not tool_name:
        return False
    return (
        tool_name in INTERNAL_TOOL_NAMES
        or tool_name.startswith(INTERNAL_TOOL_PREFIX)
        or INTERNAL_TOOL_SUBSTRING in tool_name
    )


def generate_preview(value: Any, max_chars: int = PREVIEW_MAX_CHARS) -> str | None:
    """
    Build a single-line preview of *value*, at most ``max_chars`` plus ``...``.

    Never raises: ``None`` and values that cannot be serialised (circular
    structures, exotic objects) yield ``None``.
    """
    if value is None:
        return None
    try:
        if isinstance(value, str):
            text = value
        elif isinstance(value, BaseModel):
            text = value.model_dump_json(by_alias=True)
        else:
            text = json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError, RecursionError):
        return None
    if len(text) > max_chars:
        return _WHITESPACE.sub(" ", text[:max_chars]).strip() + "..."
    return _WHITESPACE.sub(" ", text).strip()


def remove_structure_hints(obj: Any) -> Any:
    """Recursively drop ``_structureHints`` keys so internal hints never reach storage."""
    if isinstance(obj, list):
        return [remove_structure_hints(item) for item in obj]
    if isinstance(obj, dict):
        return {
            key: remove_structure_hints(value)
            for key, value in obj.items()
            if key != STRUCTURE_HINTS_KEY
        }
    return obj


def is_empty_result(data: dict[str, Any]) -> bool:
    """True when the ``toolResult`` of artifact data is missing, empty or an empty object."""
    return not data.get("toolResult")


def to_json_safe(value: Any) -> Any:
    """
    Coerce *value* into plain JSON types so an artifact record always serialises.

    Values JSON cannot encode natively (custom objects, sets, models) take the
    same textual form the token estimator uses; anything that still fails to
    round-trip is kept as that text.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    text = to_text(value)
    try:
        return json.loads(text)
    except ValueError:
        return text
