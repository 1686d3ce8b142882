"""
Distillation: turn a transcript into a structured summary with one LLM call.

Both entry points are total. Any failure (no model, request error, timeout,
invalid JSON, schema violation) yields a deterministic fallback summary so
that summarisation is never the reason a compression pass fails.

Set ``DISTILLATE_MOCK_LLM=1`` to skip the network and answer with a canned
summary, for tests and examples.
"""

from __future__ import annotations

import asyncio
import json
import math
import os
import re
from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from jinja2 import Template
from pydantic import BaseModel

from distillate.models.config import ModelInfo
from distillate.models.summary import (
    ConversationHistorySummary,
    ConversationSummary,
    fallback_history_summary,
    fallback_summary,
)
from distillate.tokens.estimator import CHARS_PER_TOKEN, TokenEstimator

logger = structlog.get_logger("distillate.distill")

SummaryT = TypeVar("SummaryT", bound=BaseModel)

TranscriptProvider = Callable[[int | None], str]
"""Callable ``(max_chars) -> transcript``. ``None`` means no character budget."""

MOCK_ENV_VAR = "DISTILLATE_MOCK_LLM"

# Share of the summarizer's window a distillation prompt may occupy.
SAFE_PROMPT_FRACTION: float = 0.8

_JSON_FENCE = re.compile(r"```(?:json)?\n?(.*?)```", re.DOTALL)

_estimator = TokenEstimator()

DISTILL_PROMPT = Template(
    """You are a conversation summarization assistant. Maintain a running summary \
of an agent conversation so the raw messages can be dropped from context.

{% if prior_summary %}**Prior summary** (the new summary replaces it and must keep everything \
still relevant):

```json
{{ prior_summary }}
```
{% else %}**Prior summary:** None
{% endif %}
**New messages:**

```text
{{ transcript }}
```

Tool results appear only as artifact references. Cite them in `related_artifacts` \
by their artifact id instead of restating their content.

Respond with JSON matching this schema:

```json
{
  "type": "conversation_summary_v1",
  "session_id": "{{ session_id }}",
  "high_level": "<1-3 sentences on what has happened so far>",
  "user_intent": "<what the user is trying to achieve>",
  "decisions": ["<decisions made and facts established>"],
  "open_questions": ["<unresolved questions>"],
  "next_steps": {
    "for_agent": ["<what the agent should do next>"],
    "for_user": ["<what the user may need to do>"]
  },
  "related_artifacts": [
    {
      "id": "<artifact id>",
      "name": "<short descriptive name>",
      "tool_name": "<tool name>",
      "tool_call_id": "<tool call id>",
      "content_type": "<kind of content>",
      "key_findings": ["<what matters in this artifact>"]
    }
  ]
}
```

Return only valid JSON."""
)

HISTORY_PROMPT = Template(
    """You are a conversation history summarization assistant. Write a summary that \
can completely replace the original conversation history while keeping all essential context.

{% if prior_summary %}**Prior summary** (the new summary must incorporate everything here \
plus the messages below):

```json
{{ prior_summary }}
```

**Messages to incorporate:**
{% else %}**Complete conversation to summarize:**
{% endif %}
```text
{{ transcript }}
```

Respond with JSON matching this schema:

```json
{
  "type": "conversation_history_summary_v1",
  "session_id": "{{ session_id }}",
  "conversation_overview": "<2-4 sentences on the full context and what was accomplished>",
  "user_goals": {"primary": "<main objective>", "secondary": ["<other goals>"]},
  "key_outcomes": {
    "completed": ["<resolved tasks>"],
    "partial": ["<work started but unfinished>"],
    "discoveries": ["<important findings>"]
  },
  "technical_context": {
    "technologies": ["<tech, frameworks, tools>"],
    "configurations": ["<settings discussed>"],
    "issues_encountered": ["<problems and errors>"],
    "solutions_applied": ["<fixes and workarounds>"]
  },
  "conversation_artifacts": [
    {
      "id": "<artifact id>",
      "name": "<descriptive name>",
      "tool_name": "<tool name>",
      "tool_call_id": "<tool call id>",
      "content_summary": "<what the artifact contains>",
      "relevance": "<high|medium|low>"
    }
  ],
  "conversation_flow": {
    "major_phases": ["<main stages>"],
    "decision_points": ["<key decisions>"],
    "topic_shifts": ["<changes of direction>"]
  },
  "context_for_continuation": {
    "current_state": "<where things stand>",
    "next_logical_steps": ["<what should happen next>"],
    "important_context": ["<background needed later>"]
  }
}
```

Record what was accomplished, learned and decided, not which tools were used. \
Agent transfers are routing only: note "conversation transferred to <specialist>" when relevant.

Return only valid JSON."""
)


# ── LLM plumbing ───────────────────────────────────────────────────────────────


def _mock_enabled() -> bool:
    return os.environ.get(MOCK_ENV_VAR) == "1"


async def _call_llm(model: str, prompt: str, mock_payload: dict[str, Any]) -> str:
    """Make a single LLM call and return the text response."""
    if _mock_enabled():
        return "```json\n" + json.dumps(mock_payload) + "\n```"

    import litellm

    response = await litellm.acompletion(
        model=model,
        messages=[{"role": "user", "content": prompt}],
        temperature=0.0,
    )
    return response.choices[0].message.content or ""


def _parse_response(text: str, schema: type[SummaryT]) -> SummaryT:
    """Extract JSON (handling markdown code fences) and validate it."""
    match = _JSON_FENCE.search(text)
    if match:
        text = match.group(1).strip()
    return schema.model_validate(json.loads(text))


def _dump_prior(summary: BaseModel | None) -> str | None:
    if summary is None:
        return None
    return summary.model_dump_json(indent=2, exclude_none=True)


def _safe_prompt_tokens(model: str) -> int | None:
    window = ModelInfo.context_window_for(model)
    if not window:
        return None
    return math.floor(window * SAFE_PROMPT_FRACTION)


def _is_too_long_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return "too long" in message or "token" in message


# ── Public API ─────────────────────────────────────────────────────────────────


async def distill_conversation(
    transcript_provider: TranscriptProvider,
    prior_summary: ConversationSummary | None,
    model: str | None,
    conversation_id: str,
    *,
    timeout: float | None = None,  # noqa: ASYNC109
) -> ConversationSummary:
    """
    Produce an updated cumulative summary for mid-generation compression.

    Args:
        transcript_provider: Renders the messages to fold in, given a
            character budget.
        prior_summary: The current cumulative summary, or None on the first pass.
        model: Summarizer model in litellm format.
        conversation_id: Stamped into the result's ``session_id``.
        timeout: Seconds before the LLM call is abandoned.

    Returns:
        The new summary, or :func:`fallback_summary` on any failure.
    """
    if not model or not model.strip():
        logger.warning("distill_no_model", conversation_id=conversation_id)
        return fallback_summary(conversation_id)

    try:
        safe_tokens = _safe_prompt_tokens(model)
        max_chars = safe_tokens * CHARS_PER_TOKEN if safe_tokens else None
        prompt = DISTILL_PROMPT.render(
            prior_summary=_dump_prior(prior_summary),
            transcript=transcript_provider(max_chars),
            session_id=conversation_id,
        )
        mock = {
            "high_level": f"Conversation {conversation_id} in progress.",
            "user_intent": "Continue the current task",
            "related_artifacts": [],
        }
        text = await asyncio.wait_for(_call_llm(model, prompt, mock), timeout=timeout)
        summary = _parse_response(text, ConversationSummary)
    except TimeoutError:
        logger.warning("distill_timeout", conversation_id=conversation_id, timeout=timeout)
        return fallback_summary(conversation_id)
    except Exception as exc:
        logger.warning("distill_failed", conversation_id=conversation_id, error=str(exc))
        return fallback_summary(conversation_id)

    logger.debug("distill_completed", conversation_id=conversation_id, model=model)
    return summary.model_copy(update={"session_id": conversation_id})


async def distill_conversation_history(
    transcript_provider: TranscriptProvider,
    prior_summary: ConversationHistorySummary | None,
    model: str | None,
    conversation_id: str,
    *,
    timeout: float | None = None,  # noqa: ASYNC109
) -> ConversationHistorySummary:
    """
    Produce a summary that replaces a conversation's entire history.

    The transcript is rendered with progressively tighter budgets (none,
    then ``safe * 4`` characters, then ``safe * 2``) where ``safe`` is 80 %
    of the summarizer's context window in tokens. An attempt whose prompt
    still exceeds ``safe`` is skipped without calling the model; an attempt
    the model rejects as too long moves on to the next budget.

    Returns:
        The new summary, or :func:`fallback_history_summary` on any failure.
    """
    log = logger.bind(conversation_id=conversation_id)
    try:
        if not model or not model.strip():
            raise ValueError("Summarizer model is required")
        safe_tokens = _safe_prompt_tokens(model)
        if not safe_tokens:
            raise ValueError(f"Could not determine context window for model {model!r}")

        prior = _dump_prior(prior_summary)
        attempts: list[tuple[str, int | None]] = [
            ("no_truncation", None),
            ("moderate", safe_tokens * 4),
            ("aggressive", safe_tokens * 2),
        ]
        mock = {
            "conversation_overview": f"Conversation {conversation_id} summarised.",
            "user_goals": {"primary": "Continue the current task"},
            "context_for_continuation": {"current_state": "In progress"},
        }

        for name, max_chars in attempts:
            prompt = HISTORY_PROMPT.render(
                prior_summary=prior,
                transcript=transcript_provider(max_chars),
                session_id=conversation_id,
            )
            prompt_tokens = _estimator.estimate(prompt)
            if prompt_tokens > safe_tokens:
                log.info(
                    "history_prompt_over_limit",
                    attempt=name,
                    prompt_tokens=prompt_tokens,
                    safe_tokens=safe_tokens,
                )
                continue
            try:
                text = await asyncio.wait_for(_call_llm(model, prompt, mock), timeout=timeout)
            except Exception as exc:
                if not isinstance(exc, TimeoutError) and _is_too_long_error(exc):
                    log.info("history_prompt_rejected", attempt=name, error=str(exc))
                    continue
                raise
            summary = _parse_response(text, ConversationHistorySummary)
            log.debug("history_distill_completed", attempt=name, model=model)
            return summary.model_copy(update={"session_id": conversation_id})

        raise RuntimeError(
            f"All truncation attempts exceeded limits (safe limit: {safe_tokens} tokens)"
        )
    except TimeoutError:
        log.warning("history_distill_timeout", timeout=timeout)
        return fallback_history_summary(conversation_id)
    except Exception as exc:
        log.error("history_distill_failed", error=str(exc))
        return fallback_history_summary(conversation_id)
