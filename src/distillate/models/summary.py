"""Structured conversation summaries produced by distillation."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class NextSteps(BaseModel):
    for_agent: list[str] = Field(default_factory=list)
    for_user: list[str] = Field(default_factory=list)


class RelatedArtifact(BaseModel):
    """An artifact the summary points at instead of inlining its content."""

    id: str
    name: str
    tool_name: str
    tool_call_id: str
    content_type: str
    key_findings: list[str] = Field(default_factory=list)


class ConversationSummary(BaseModel):
    """
    Cumulative summary used by mid-generation compression.

    Each distillation call receives the previous summary as context and
    returns a complete replacement; summaries are never merged field by field.
    """

    type: Literal["conversation_summary_v1"] = "conversation_summary_v1"
    session_id: str | None = None
    high_level: str = Field(description="1-3 sentences describing what has happened so far.")
    user_intent: str = Field(description="What the user is trying to achieve.")
    decisions: list[str] = Field(default_factory=list)
    open_questions: list[str] = Field(default_factory=list)
    next_steps: NextSteps = Field(default_factory=NextSteps)
    related_artifacts: list[RelatedArtifact] | None = None


def fallback_summary(session_id: str | None = None) -> ConversationSummary:
    """Deterministic minimal summary used whenever distillation fails."""
    return ConversationSummary(
        session_id=session_id,
        high_level="Ongoing conversation session",
        user_intent="Continue working on the current task",
        decisions=[],
        open_questions=["Review recent work and determine next steps"],
        next_steps=NextSteps(
            for_agent=["Continue with the current task"],
            for_user=[],
        ),
        related_artifacts=[],
    )


# ── Full-history summary ───────────────────────────────────────────────────────


class UserGoals(BaseModel):
    primary: str
    secondary: list[str] = Field(default_factory=list)


class KeyOutcomes(BaseModel):
    completed: list[str] = Field(default_factory=list)
    partial: list[str] = Field(default_factory=list)
    discoveries: list[str] = Field(default_factory=list)


class TechnicalContext(BaseModel):
    technologies: list[str] = Field(default_factory=list)
    configurations: list[str] = Field(default_factory=list)
    issues_encountered: list[str] = Field(default_factory=list)
    solutions_applied: list[str] = Field(default_factory=list)


class ConversationArtifact(BaseModel):
    id: str
    name: str
    tool_name: str
    tool_call_id: str
    content_summary: str
    relevance: Literal["high", "medium", "low"] = "medium"


class ConversationFlow(BaseModel):
    major_phases: list[str] = Field(default_factory=list)
    decision_points: list[str] = Field(default_factory=list)
    topic_shifts: list[str] = Field(default_factory=list)


class ContinuationContext(BaseModel):
    current_state: str
    next_logical_steps: list[str] = Field(default_factory=list)
    important_context: list[str] = Field(default_factory=list)


class ConversationHistorySummary(BaseModel):
    """
    Summary that fully replaces a conversation's history.

    Produced by conversation-level compression, which re-summarises every
    message on each pass.
    """

    type: Literal["conversation_history_summary_v1"] = "conversation_history_summary_v1"
    session_id: str | None = None
    conversation_overview: str
    user_goals: UserGoals
    key_outcomes: KeyOutcomes = Field(default_factory=KeyOutcomes)
    technical_context: TechnicalContext = Field(default_factory=TechnicalContext)
    conversation_artifacts: list[ConversationArtifact] | None = None
    conversation_flow: ConversationFlow = Field(default_factory=ConversationFlow)
    context_for_continuation: ContinuationContext


def fallback_history_summary(session_id: str | None = None) -> ConversationHistorySummary:
    """Deterministic history summary used whenever history distillation fails."""
    return ConversationHistorySummary(
        session_id=session_id,
        conversation_overview="Conversation session with technical discussion and problem-solving",
        user_goals=UserGoals(primary="Technical assistance and problem-solving"),
        key_outcomes=KeyOutcomes(partial=["Ongoing technical work"]),
        conversation_artifacts=[],
        conversation_flow=ConversationFlow(
            major_phases=["Initial discussion", "Technical exploration"],
        ),
        context_for_continuation=ContinuationContext(
            current_state="In progress - technical work ongoing",
            next_logical_steps=["Continue with current technical objectives"],
            important_context=["Review previous discussion for technical context"],
        ),
    )
