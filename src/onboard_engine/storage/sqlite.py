"""SQLite persistence for audit events (append-only)."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import aiosqlite

from onboard_engine.audit.sink import AuditSink
from onboard_engine.models.audit import AuditEvent, AuditEventKind

_SCHEMA = """
-- Lifecycle audit trail (immutable, append-only)
CREATE TABLE IF NOT EXISTS audit_events (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    principal_id TEXT NOT NULL,
    tenant_id TEXT NOT NULL,
    succeeded INTEGER NOT NULL,
    session_id TEXT NOT NULL,
    timestamp_utc TIMESTAMP NOT NULL,
    metadata JSON
);

CREATE INDEX IF NOT EXISTS idx_audit_events_tenant ON audit_events (tenant_id);
"""


class AuditStore:
    """Async SQLite storage for the audit trail."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection and create schema."""
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("AuditStore not initialized; call initialize() first")
        return self._db

    async def append_event(self, event: AuditEvent) -> None:
        await self.db.execute(
            """INSERT INTO audit_events
               (kind, principal_id, tenant_id, succeeded, session_id, timestamp_utc, metadata)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                event.kind.value,
                event.principal_id,
                event.tenant_id,
                int(event.succeeded),
                event.session_id,
                event.timestamp_utc.isoformat(),
                json.dumps(event.metadata, default=str),
            ),
        )
        await self.db.commit()

    async def list_events(
        self,
        *,
        tenant_id: str | None = None,
        kind: AuditEventKind | str | None = None,
    ) -> list[AuditEvent]:
        query = "SELECT * FROM audit_events WHERE 1=1"
        params: list = []
        if tenant_id:
            query += " AND tenant_id = ?"
            params.append(tenant_id)
        if kind:
            query += " AND kind = ?"
            params.append(str(kind))
        query += " ORDER BY seq"
        cursor = await self.db.execute(query, params)
        rows = await cursor.fetchall()
        return [
            AuditEvent(
                kind=AuditEventKind(row["kind"]),
                principal_id=row["principal_id"],
                tenant_id=row["tenant_id"],
                succeeded=bool(row["succeeded"]),
                session_id=row["session_id"],
                timestamp_utc=datetime.fromisoformat(row["timestamp_utc"]),
                metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            )
            for row in rows
        ]


class SqliteAuditSink(AuditSink):
    def __init__(self, store: AuditStore) -> None:
        self._store = store

    async def emit(self, event: AuditEvent) -> None:
        await self._store.append_event(event)
