"""Audit event shape. Events are append-only and never mutated."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class AuditEventKind(StrEnum):
    SIGN_IN = "sign_in"
    SIGN_IN_FAILED = "sign_in_failed"
    SESSION_STARTED = "session_started"
    SESSION_COMPLETED = "session_completed"
    CLEANUP_EXECUTED = "cleanup_executed"


class AuditEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: AuditEventKind
    principal_id: str = ""
    tenant_id: str = ""
    succeeded: bool
    session_id: str
    timestamp_utc: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: dict = Field(default_factory=dict)
