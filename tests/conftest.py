"""Shared fixtures for distillate tests."""

from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from distillate.events.bus import DistillateEvent, EventBus
from distillate.models.artifact import ArtifactScope, ExistingArtifact
from distillate.models.config import CompressionConfig, DistillateConfig, LedgerConfig
from distillate.session import SessionManager
from distillate.store.ledger import InMemoryArtifactLedger, SQLiteArtifactLedger
from distillate.tokens.estimator import TokenEstimator


class CountingLedger(InMemoryArtifactLedger):
    """In-memory ledger that records every batched lookup and can be told to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.batch_calls: list[list[str]] = []
        self.fail_with: Exception | None = None

    async def batch_get(
        self, scope: ArtifactScope, tool_call_ids: list[str]
    ) -> list[ExistingArtifact]:
        self.batch_calls.append(list(tool_call_ids))
        if self.fail_with is not None:
            raise self.fail_with
        return await super().batch_get(scope, tool_call_ids)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep operator overrides in the host environment out of every test."""
    for var in (
        "DISTILLATE_COMPRESSION_HARD_LIMIT",
        "DISTILLATE_COMPRESSION_SAFETY_BUFFER",
        "DISTILLATE_COMPRESSION_ENABLED",
        "DISTILLATE_MOCK_LLM",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def mock_llm(monkeypatch):
    """Answer distillation calls with canned summaries instead of hitting a provider."""
    monkeypatch.setenv("DISTILLATE_MOCK_LLM", "1")


@pytest.fixture
def estimator():
    return TokenEstimator()


@pytest.fixture
def event_bus():
    """EventBus with a .collected list for asserting events."""
    bus = EventBus()
    collected: list[tuple[DistillateEvent, dict[str, Any]]] = []

    def _collect(event: DistillateEvent, payload: dict[str, Any]) -> None:
        collected.append((event, payload))

    bus.subscribe_all(_collect)
    bus.collected = collected  # type: ignore[attr-defined]
    return bus


@pytest.fixture
def ledger():
    return CountingLedger()


@pytest.fixture
def config(tmp_path):
    """Small limits so tests can cross the threshold with a handful of messages."""
    return DistillateConfig(
        compression=CompressionConfig(hard_limit=1_000, safety_buffer=200),
        ledger=LedgerConfig(db_path=str(tmp_path / "artifacts.db")),
        summarizer_model="openai/gpt-4o-mini",
        base_model="anthropic/claude-sonnet-4-5",
        summarization_timeout=5.0,
    )


@pytest.fixture
def manager(config, ledger, event_bus):
    return SessionManager(config, ledger=ledger, event_bus=event_bus)


@pytest.fixture
def session(manager):
    return manager.create_session(
        conversation_id="conv_TEST01",
        tenant_id="tenant_1",
        project_id="project_1",
        session_id="sess_TEST01",
    )


@pytest.fixture
def span_exporter():
    """(exporter, tracer) pair backed by an in-memory OpenTelemetry SDK provider."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    yield exporter, provider.get_tracer("distillate.tests")
    provider.shutdown()


@pytest_asyncio.fixture
async def sqlite_ledger(config):
    """Initialized SQLiteArtifactLedger in a temp directory. Closed after each test."""
    ledger = SQLiteArtifactLedger(config.ledger)
    await ledger.initialize()
    yield ledger
    await ledger.close()
