"""Render a message window as plain text for the summarizer, with tool results as artifact references."""

from __future__ import annotations

import json
from typing import Any

from distillate.models.artifact import ArtifactInfo
from distillate.models.message import Message, TextBlock, ToolCallBlock, ToolResultBlock

MIN_RESULT_CHARS: int = 200
DEFAULT_ROLE: str = "system"


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def _non_tool_chars(
    messages: list[Message], artifact_map: dict[str, ArtifactInfo]
) -> tuple[int, int]:
    """Return (characters outside tool results, number of tool results with an artifact)."""
    chars = 0
    results = 0
    for message in messages:
        content = message.content
        if isinstance(content, str):
            chars += len(content)
        elif isinstance(content, list):
            for block in content:
                if isinstance(block, TextBlock):
                    chars += len(block.text or "")
                elif isinstance(block, ToolCallBlock):
                    chars += len(_compact_json(block.input or {})) + len(block.tool_name or "")
                elif isinstance(block, ToolResultBlock) and block.tool_call_id in artifact_map:
                    results += 1
        else:
            text = message.legacy_text()
            if text:
                chars += len(text)
    return chars, results


def _render_tool_result(
    block: ToolResultBlock, info: ArtifactInfo, per_result_limit: int | None
) -> str:
    summary = _compact_json(info.summary_data) if info.summary_data else ""
    if per_result_limit and len(summary) > per_result_limit:
        summary = summary[:per_result_limit] + "..."
    return f"[TOOL RESULT] {block.tool_name} [ARTIFACT: {info.artifact_id}]\n{summary}"


def format_transcript(
    messages: list[Message],
    artifact_map: dict[str, ArtifactInfo] | None = None,
    max_total_chars: int | None = None,
) -> str:
    """
    Format messages for distillation.

    Each message becomes ``"<role>: <parts>"``. Tool calls render as
    ``[TOOL CALL] name(args) [ID: id]``. A tool result renders only when it
    has an artifact, and then only as its artifact id plus the stored
    summary, never the raw output. Messages with nothing to render are
    dropped; the rest are separated by blank lines.

    Args:
        messages: Messages to render.
        artifact_map: Tool-call id to artifact info, from
            :meth:`~distillate.artifacts.manager.ArtifactManager.save_as_artifacts`.
        max_total_chars: Optional overall budget. The characters left after
            non-tool content are split evenly across tool results, with a
            floor of 200 characters each.

    Returns:
        The transcript text.
    """
    artifact_map = artifact_map or {}
    non_tool_chars, result_count = _non_tool_chars(messages, artifact_map)

    per_result_limit = max_total_chars
    if max_total_chars and result_count > 0:
        per_result_limit = max(
            MIN_RESULT_CHARS, (max_total_chars - non_tool_chars) // result_count
        )

    rendered: list[str] = []
    for message in messages:
        parts: list[str] = []
        content = message.content
        if isinstance(content, str):
            parts.append(content)
        elif isinstance(content, list):
            for block in content:
                if isinstance(block, TextBlock):
                    parts.append(block.text)
                elif isinstance(block, ToolCallBlock):
                    parts.append(
                        f"[TOOL CALL] {block.tool_name}({_compact_json(block.input)}) "
                        f"[ID: {block.tool_call_id}]"
                    )
                elif isinstance(block, ToolResultBlock):
                    info = artifact_map.get(block.tool_call_id)
                    if info is not None:
                        parts.append(_render_tool_result(block, info, per_result_limit))
        else:
            text = message.legacy_text()
            if text:
                parts.append(text)

        if not parts:
            continue
        line = f"{message.role or DEFAULT_ROLE}: " + "\n".join(parts)
        if line.strip():
            rendered.append(line)

    return "\n\n".join(rendered)
