"""Tests for configuration models."""

from __future__ import annotations

from pathlib import Path

import pytest

from distillate.models.config import (
    DEFAULT_HARD_LIMIT,
    DEFAULT_SAFETY_BUFFER,
    CompressionConfig,
    DistillateConfig,
    LedgerConfig,
    ModelInfo,
)


class TestCompressionConfig:
    def test_defaults(self) -> None:
        cfg = CompressionConfig()
        assert cfg.hard_limit == DEFAULT_HARD_LIMIT == 120_000
        assert cfg.safety_buffer == DEFAULT_SAFETY_BUFFER == 20_000
        assert cfg.enabled is True
        assert cfg.trigger_point == 100_000

    def test_buffer_must_be_below_hard_limit(self) -> None:
        with pytest.raises(ValueError, match="strictly greater"):
            CompressionConfig(hard_limit=1_000, safety_buffer=1_000)

    def test_negative_buffer_rejected(self) -> None:
        with pytest.raises(ValueError):
            CompressionConfig(hard_limit=1_000, safety_buffer=-1)

    def test_zero_hard_limit_rejected(self) -> None:
        with pytest.raises(ValueError):
            CompressionConfig(hard_limit=0, safety_buffer=0)


class TestForModel:
    def test_large_window_tier(self) -> None:
        window = 1_048_576
        cfg = CompressionConfig.for_model("google/gemini-2.5-pro")
        assert cfg.hard_limit == int(window * 0.95)
        assert cfg.safety_buffer == int(window * 0.04)

    def test_medium_window_tier(self) -> None:
        cfg = CompressionConfig.for_model("anthropic/claude-sonnet-4-5")
        assert cfg.hard_limit == int(200_000 * 0.90)
        assert cfg.safety_buffer == int(200_000 * 0.07)

    def test_hundred_k_window_is_medium_tier(self) -> None:
        cfg = CompressionConfig.for_model("openai/gpt-4o")
        assert cfg.hard_limit == int(128_000 * 0.90)
        assert cfg.safety_buffer == int(128_000 * 0.07)

    def test_small_window_tier(self, monkeypatch) -> None:
        monkeypatch.setattr(ModelInfo, "context_window_for", classmethod(lambda cls, m: 32_000))
        cfg = CompressionConfig.for_model("acme/small")
        assert cfg.hard_limit == int(32_000 * 0.85)
        assert cfg.safety_buffer == int(32_000 * 0.10)

    def test_target_percentage_overrides_hard_fraction(self) -> None:
        cfg = CompressionConfig.for_model("anthropic/claude-sonnet-4-5", target_percentage=0.5)
        assert cfg.hard_limit == 100_000
        assert cfg.safety_buffer == int(200_000 * 0.07)

    @pytest.mark.parametrize("model", [None, "", "acme/mystery-model"])
    def test_unknown_model_uses_defaults(self, model) -> None:
        cfg = CompressionConfig.for_model(model)
        assert cfg.hard_limit == DEFAULT_HARD_LIMIT
        assert cfg.safety_buffer == DEFAULT_SAFETY_BUFFER


class TestEnvironmentOverrides:
    def test_env_limits_win_over_model(self, monkeypatch) -> None:
        monkeypatch.setenv("DISTILLATE_COMPRESSION_HARD_LIMIT", "60000")
        monkeypatch.setenv("DISTILLATE_COMPRESSION_SAFETY_BUFFER", "5000")
        cfg = CompressionConfig.for_model("anthropic/claude-sonnet-4-5")
        assert cfg.hard_limit == 60_000
        assert cfg.safety_buffer == 5_000

    def test_missing_env_half_uses_default(self, monkeypatch) -> None:
        monkeypatch.setenv("DISTILLATE_COMPRESSION_HARD_LIMIT", "50000")
        cfg = CompressionConfig.for_model("anthropic/claude-sonnet-4-5")
        assert cfg.hard_limit == 50_000
        assert cfg.safety_buffer == DEFAULT_SAFETY_BUFFER

    def test_env_limits_still_validated(self, monkeypatch) -> None:
        monkeypatch.setenv("DISTILLATE_COMPRESSION_HARD_LIMIT", "10000")
        with pytest.raises(ValueError):
            CompressionConfig.for_model()

    @pytest.mark.parametrize("value", ["false", "FALSE", "False"])
    def test_disabled_flag(self, monkeypatch, value) -> None:
        monkeypatch.setenv("DISTILLATE_COMPRESSION_ENABLED", value)
        assert CompressionConfig.for_model("anthropic/claude-sonnet-4-5").enabled is False
        assert CompressionConfig.for_model().enabled is False

    def test_any_other_value_keeps_enabled(self, monkeypatch) -> None:
        monkeypatch.setenv("DISTILLATE_COMPRESSION_ENABLED", "0")
        assert CompressionConfig.for_model().enabled is True


class TestLedgerConfig:
    def test_tilde_expanded(self) -> None:
        cfg = LedgerConfig(db_path="~/.distillate/test.db")
        assert "~" not in cfg.db_path
        assert Path(cfg.db_path).is_absolute()
        assert cfg.db_path.endswith("test.db")

    def test_memory_path_preserved(self) -> None:
        assert LedgerConfig(db_path=":memory:").db_path == ":memory:"

    def test_defaults(self) -> None:
        cfg = LedgerConfig()
        assert cfg.wal_mode is True
        assert cfg.connection_timeout == 30.0


class TestDistillateConfig:
    def test_defaults(self) -> None:
        cfg = DistillateConfig()
        assert isinstance(cfg.compression, CompressionConfig)
        assert isinstance(cfg.ledger, LedgerConfig)
        assert cfg.summarizer_model is None
        assert cfg.base_model is None
        assert cfg.summarization_timeout == 120.0

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            DistillateConfig(summarization_timeout=0)


class TestModelInfo:
    @pytest.mark.parametrize(
        ("model", "window"),
        [
            ("anthropic/claude-opus-4-6", 200_000),
            ("claude-sonnet-4-5", 200_000),
            ("openai/o3-mini", 200_000),
            ("gpt-4o", 128_000),
            ("openai/gpt-4-turbo", 128_000),
            ("google/gemini-2.5-pro", 1_048_576),
        ],
    )
    def test_known_windows(self, model, window) -> None:
        assert ModelInfo.context_window_for(model) == window

    def test_provider_parsed_from_prefix(self) -> None:
        info = ModelInfo.from_model_string("anthropic/claude-sonnet-4-5")
        assert info.provider_id == "anthropic"
        assert info.context_limit == 200_000

    def test_family_supplies_default_provider(self) -> None:
        assert ModelInfo.from_model_string("gpt-4o").provider_id == "openai"

    def test_unknown_family_flagged(self) -> None:
        info = ModelInfo.from_model_string("acme/mystery-model")
        assert info.known is False
        assert info.provider_id == "acme"
        assert ModelInfo.context_window_for("acme/mystery-model") is None

    @pytest.mark.parametrize("model", [None, "", "   "])
    def test_blank_model_has_no_window(self, model) -> None:
        assert ModelInfo.context_window_for(model) is None
