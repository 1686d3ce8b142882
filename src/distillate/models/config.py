"""Configuration models for distillate compression policies and components."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_HARD_LIMIT: int = 120_000
DEFAULT_SAFETY_BUFFER: int = 20_000

_ENV_HARD_LIMIT = "DISTILLATE_COMPRESSION_HARD_LIMIT"
_ENV_SAFETY_BUFFER = "DISTILLATE_COMPRESSION_SAFETY_BUFFER"
_ENV_ENABLED = "DISTILLATE_COMPRESSION_ENABLED"


class CompressionConfig(BaseModel):
    """Token thresholds that decide when a session's context is compressed."""

    hard_limit: int = Field(
        default=DEFAULT_HARD_LIMIT,
        gt=0,
        description="Token ceiling the session context must stay under.",
    )

    safety_buffer: int = Field(
        default=DEFAULT_SAFETY_BUFFER,
        ge=0,
        description=(
            "Margin below hard_limit that triggers compression before the ceiling "
            "is actually reached."
        ),
    )

    enabled: bool = True
    """Advisory flag. Callers decide whether to build a policy when disabled."""

    @model_validator(mode="after")
    def validate_limits(self) -> CompressionConfig:
        if self.hard_limit <= self.safety_buffer:
            raise ValueError("hard_limit must be strictly greater than safety_buffer")
        return self

    @property
    def trigger_point(self) -> int:
        """Context size (tokens) at which automatic compression fires."""
        return self.hard_limit - self.safety_buffer

    @classmethod
    def for_model(
        cls,
        model: str | None = None,
        target_percentage: float | None = None,
    ) -> CompressionConfig:
        """
        Build a model-aware config.

        Environment variables win over everything else so operators can pin
        limits without code changes. Otherwise thresholds scale with the
        model's context window:

        - window > 500K tokens: hard limit 95 %, safety buffer 4 %
        - window >= 100K tokens: hard limit 90 %, safety buffer 7 %
        - smaller windows: hard limit 85 %, safety buffer 10 %

        Args:
            model: litellm-style model string. ``None`` or an unknown model
                yields the global defaults.
            target_percentage: Override for the hard-limit fraction of the
                context window (e.g. ``0.5`` to compress at half the window).

        Returns:
            A validated CompressionConfig.
        """
        enabled = os.environ.get(_ENV_ENABLED, "true").lower() != "false"
        env_hard = os.environ.get(_ENV_HARD_LIMIT)
        env_buffer = os.environ.get(_ENV_SAFETY_BUFFER)
        if env_hard or env_buffer:
            return cls(
                hard_limit=int(env_hard) if env_hard else DEFAULT_HARD_LIMIT,
                safety_buffer=int(env_buffer) if env_buffer else DEFAULT_SAFETY_BUFFER,
                enabled=enabled,
            )

        window = ModelInfo.context_window_for(model)
        if not window:
            return cls(enabled=enabled)

        if window > 500_000:
            hard_fraction, buffer_fraction = 0.95, 0.04
        elif window >= 100_000:
            hard_fraction, buffer_fraction = 0.90, 0.07
        else:
            hard_fraction, buffer_fraction = 0.85, 0.10

        if target_percentage is not None:
            hard_fraction = target_percentage

        return cls(
            hard_limit=int(window * hard_fraction),
            safety_buffer=int(window * buffer_fraction),
            enabled=enabled,
        )


class LedgerConfig(BaseModel):
    """Configuration for the SQLite artifact ledger."""

    db_path: str = Field(
        default="~/.distillate/artifacts.db",
        description="Path to the SQLite database file. ~ is expanded eagerly.",
    )

    wal_mode: bool = True
    """Use WAL journal mode for better concurrent read performance."""

    connection_timeout: float = 30.0
    """Seconds to wait for the database connection before raising."""

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: str | Path) -> str:
        if str(value) == ":memory:":
            return ":memory:"
        return str(Path(value).expanduser().resolve())


class DistillateConfig(BaseModel):
    """
    Top-level configuration for a compression session.

    Example::

        config = DistillateConfig(
            compression=CompressionConfig(hard_limit=80_000, safety_buffer=10_000),
            summarizer_model="anthropic/claude-haiku-3-5",
        )
    """

    compression: CompressionConfig = Field(default_factory=CompressionConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)

    summarizer_model: str | None = Field(
        default=None,
        description="Model used for distillation calls. Required for conversation-level mode.",
    )

    base_model: str | None = Field(
        default=None,
        description=(
            "Model whose context window seeds oversized-artifact detection. "
            "None disables oversized detection."
        ),
    )

    summarization_timeout: float | None = Field(
        default=120.0,
        gt=0,
        description="Seconds before a distillation call is abandoned for the fallback summary.",
    )


# (model-name substrings, default provider, context window). First match wins,
# so the more specific families come first.
_MODEL_FAMILIES: tuple[tuple[tuple[str, ...], str, int], ...] = (
    (("claude",), "anthropic", 200_000),
    (("o1", "o3", "o4-"), "openai", 200_000),
    (("gpt-4.1",), "openai", 1_047_576),
    (("gpt-4o", "gpt-4", "gpt-3"), "openai", 128_000),
    (("gemini",), "google", 1_048_576),
)


class ModelInfo(BaseModel):
    """Context-window metadata for a litellm-style model string."""

    model_id: str
    provider_id: str = ""
    context_limit: int = Field(
        default=128_000,
        description="Total input + output token limit for this model.",
    )
    known: bool = True
    """False when the model string matched no family and the default window was assumed."""

    @classmethod
    def from_model_string(cls, model: str) -> ModelInfo:
        """
        Resolve a model string such as ``anthropic/claude-sonnet-4-5``,
        ``gpt-4o`` or ``google/gemini-2.5-pro``.

        The optional ``provider/`` prefix overrides the family's provider.
        """
        provider, _, name = model.lower().rpartition("/")
        for needles, default_provider, window in _MODEL_FAMILIES:
            if any(needle in name for needle in needles):
                return cls(
                    model_id=model,
                    provider_id=provider or default_provider,
                    context_limit=window,
                )
        return cls(model_id=model, provider_id=provider, known=False)

    @classmethod
    def context_window_for(cls, model: str | None) -> int | None:
        """Return the context window for *model*, or None when it is not known."""
        if not model or not model.strip():
            return None
        info = cls.from_model_string(model)
        if not info.known or info.context_limit <= 0:
            return None
        return info.context_limit
