"""Artifact ledger: the durable side of tool-result eviction.

The compression engine only ever *reads* the ledger, through one batched
``batch_get`` per pass. Writes arrive asynchronously from ``artifact_saved``
events, so a ledger can be attached to any session's event bus.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import aiosqlite
import structlog

from distillate.events.bus import DistillateEvent, EventBus
from distillate.models.artifact import ArtifactRecord, ArtifactScope, ExistingArtifact
from distillate.models.config import LedgerConfig

# ── Exceptions ─────────────────────────────────────────────────────────────────


class LedgerError(Exception):
    """Base class for ledger errors."""


class ArtifactNotFoundError(LedgerError):
    """Raised when an artifact_id does not exist in the ledger."""

    def __init__(self, artifact_id: str) -> None:
        super().__init__(f"Artifact not found: {artifact_id!r}")
        self.artifact_id = artifact_id


class DuplicateArtifactError(LedgerError):
    """Raised when attempting to insert an artifact with an existing id."""

    def __init__(self, artifact_id: str) -> None:
        super().__init__(f"Duplicate artifact: {artifact_id!r}")
        self.artifact_id = artifact_id


# ── Protocol ───────────────────────────────────────────────────────────────────


@runtime_checkable
class ArtifactLedger(Protocol):
    """Lookup interface the artifact manager depends on."""

    async def batch_get(
        self, scope: ArtifactScope, tool_call_ids: list[str]
    ) -> list[ExistingArtifact]:
        """Return artifacts within *scope* whose tool_call_id is in *tool_call_ids*."""
        ...


class InMemoryArtifactLedger:
    """Dict-backed ledger for embedding and tests. Not durable."""

    def __init__(self) -> None:
        self._records: dict[str, ArtifactRecord] = {}

    async def batch_get(
        self, scope: ArtifactScope, tool_call_ids: list[str]
    ) -> list[ExistingArtifact]:
        wanted = set(tool_call_ids)
        return [
            ExistingArtifact.from_record(r)
            for r in self._records.values()
            if r.tenant_id == scope.tenant_id
            and r.project_id == scope.project_id
            and r.tool_call_id in wanted
        ]

    async def save(self, record: ArtifactRecord) -> ArtifactRecord:
        if record.artifact_id in self._records:
            raise DuplicateArtifactError(record.artifact_id)
        self._records[record.artifact_id] = record
        return record

    async def get(self, artifact_id: str) -> ArtifactRecord:
        try:
            return self._records[artifact_id]
        except KeyError:
            raise ArtifactNotFoundError(artifact_id) from None

    def attach(self, event_bus: EventBus) -> None:
        """Store every ``artifact_saved`` event published on *event_bus*."""
        event_bus.subscribe(DistillateEvent.ARTIFACT_SAVED, self._on_artifact_saved)

    def _on_artifact_saved(self, event: DistillateEvent, payload: dict[str, Any]) -> None:
        record = ArtifactRecord.model_validate(payload)
        self._records.setdefault(record.artifact_id, record)

    def __len__(self) -> int:
        return len(self._records)


# ── SQLite ledger ──────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS artifacts (
    artifact_id        TEXT PRIMARY KEY,
    tenant_id          TEXT NOT NULL,
    project_id         TEXT NOT NULL,
    tool_call_id       TEXT NOT NULL,
    task_id            TEXT NOT NULL,
    context_id         TEXT NOT NULL,
    sub_agent_id       TEXT NOT NULL,
    artifact_type      TEXT NOT NULL,
    pending_generation INTEGER NOT NULL DEFAULT 1,
    name               TEXT,
    description        TEXT,
    metadata           TEXT NOT NULL,
    summary_data       TEXT NOT NULL,
    data               TEXT NOT NULL,
    created_at         INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_artifacts_scope_tool_call
    ON artifacts (tenant_id, project_id, tool_call_id);
"""

_COLUMNS = (
    "artifact_id, tenant_id, project_id, tool_call_id, task_id, context_id, "
    "sub_agent_id, artifact_type, pending_generation, name, description, "
    "metadata, summary_data, data, created_at"
)


class SQLiteArtifactLedger:
    """
    SQLite-backed artifact ledger.

    Usage::

        ledger = SQLiteArtifactLedger(LedgerConfig(db_path="/tmp/artifacts.db"))
        await ledger.initialize()
        ledger.attach(session.event_bus)   # persist artifact_saved events
        try:
            ...
        finally:
            await ledger.close()
    """

    def __init__(self, config: LedgerConfig) -> None:
        self._config = config
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()
        self._pending_writes: set[asyncio.Task[None]] = set()
        self._logger = structlog.get_logger("distillate.store.ledger")

    async def initialize(self) -> None:
        """Open the connection and create the schema. Idempotent."""
        if self._conn is not None:
            return
        db_path = self._config.db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(db_path, timeout=self._config.connection_timeout)
        self._conn.row_factory = aiosqlite.Row
        if self._config.wal_mode and db_path != ":memory:":
            await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()
        self._logger.debug("ledger_initialized", db_path=db_path)

    async def close(self) -> None:
        """Flush pending event-driven writes and close the connection."""
        await self.wait_for_pending_writes()
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @property
    def _db(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("SQLiteArtifactLedger.initialize() has not been called")
        return self._conn

    # ── Reads ──────────────────────────────────────────────────────────────────

    async def batch_get(
        self, scope: ArtifactScope, tool_call_ids: list[str]
    ) -> list[ExistingArtifact]:
        """Single-query lookup of all artifacts for *tool_call_ids* within *scope*."""
        if not tool_call_ids:
            return []
        placeholders = ", ".join("?" for _ in tool_call_ids)
        sql = (
            f"SELECT {_COLUMNS} FROM artifacts "
            f"WHERE tenant_id = ? AND project_id = ? AND tool_call_id IN ({placeholders}) "
            "ORDER BY created_at"
        )
        async with self._db.execute(
            sql, (scope.tenant_id, scope.project_id, *tool_call_ids)
        ) as cursor:
            rows = await cursor.fetchall()
        return [ExistingArtifact.from_record(self._row_to_record(row)) for row in rows]

    async def get(self, artifact_id: str) -> ArtifactRecord:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM artifacts WHERE artifact_id = ?", (artifact_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise ArtifactNotFoundError(artifact_id)
        return self._row_to_record(row)

    # ── Writes ─────────────────────────────────────────────────────────────────

    async def save(self, record: ArtifactRecord) -> ArtifactRecord:
        """
        Insert a new artifact record.

        Raises:
            DuplicateArtifactError: If ``record.artifact_id`` already exists.
        """
        async with self._write_lock:
            try:
                await self._db.execute(
                    f"INSERT INTO artifacts ({_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.artifact_id,
                        record.tenant_id,
                        record.project_id,
                        record.tool_call_id,
                        record.task_id,
                        record.context_id,
                        record.sub_agent_id,
                        record.artifact_type,
                        int(record.pending_generation),
                        record.name,
                        record.description,
                        record.metadata.model_dump_json(),
                        json.dumps(record.summary_data, default=str),
                        json.dumps(record.data, default=str),
                        record.created_at,
                    ),
                )
                await self._db.commit()
            except aiosqlite.IntegrityError as exc:
                await self._db.rollback()
                raise DuplicateArtifactError(record.artifact_id) from exc
        return record

    async def complete_generation(
        self, artifact_id: str, *, name: str, description: str
    ) -> ArtifactRecord:
        """Assign the human name/description and clear ``pending_generation``."""
        async with self._write_lock:
            cursor = await self._db.execute(
                "UPDATE artifacts SET name = ?, description = ?, pending_generation = 0 "
                "WHERE artifact_id = ?",
                (name, description, artifact_id),
            )
            await self._db.commit()
            if cursor.rowcount == 0:
                raise ArtifactNotFoundError(artifact_id)
        return await self.get(artifact_id)

    # ── Event wiring ───────────────────────────────────────────────────────────

    def attach(self, event_bus: EventBus) -> None:
        """Persist every ``artifact_saved`` event published on *event_bus*."""
        event_bus.subscribe(DistillateEvent.ARTIFACT_SAVED, self._on_artifact_saved)

    def _on_artifact_saved(self, event: DistillateEvent, payload: dict[str, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.warning(
                "artifact_write_skipped_no_loop", artifact_id=payload.get("artifact_id")
            )
            return
        task = loop.create_task(self._persist(payload))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _persist(self, payload: dict[str, Any]) -> None:
        record = ArtifactRecord.model_validate(payload)
        try:
            await self.save(record)
        except LedgerError as exc:
            self._logger.error(
                "artifact_write_failed", artifact_id=record.artifact_id, error=str(exc)
            )

    async def wait_for_pending_writes(self) -> None:
        """Await all in-flight event-driven writes."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    # ── Row mapping ────────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> ArtifactRecord:
        return ArtifactRecord(
            artifact_id=row["artifact_id"],
            tenant_id=row["tenant_id"],
            project_id=row["project_id"],
            tool_call_id=row["tool_call_id"],
            task_id=row["task_id"],
            context_id=row["context_id"],
            sub_agent_id=row["sub_agent_id"],
            artifact_type=row["artifact_type"],
            pending_generation=bool(row["pending_generation"]),
            name=row["name"],
            description=row["description"],
            metadata=json.loads(row["metadata"]),
            summary_data=json.loads(row["summary_data"]),
            data=json.loads(row["data"]),
            created_at=row["created_at"],
        )
