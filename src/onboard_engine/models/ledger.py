"""Ledger types: demo sessions, tracked resources, cleanup plans and reports."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ResourceType(StrEnum):
    USER = "user"
    FILE = "file"
    EMAIL = "email"
    CHAT = "chat"
    TEAM = "team"
    LICENSE = "license"


class SessionStatus(StrEnum):
    ACTIVE = "active"
    CLEANING = "cleaning"
    CLEANED = "cleaned"
    COMPLETED = "completed"


class ResourceRecord(BaseModel):
    """A resource created during a demo session. Appended once, never mutated.

    parent_resource_id is a relation to another record's resource_id in the same
    session. It is not enforced and may dangle.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    tenant_id: str
    session_id: str
    resource_type: ResourceType
    resource_id: str
    parent_resource_id: str | None = None
    endpoint_hint: str
    display_name: str
    created_at_utc: datetime
    metadata: dict = Field(default_factory=dict)


class DemoSession(BaseModel):
    session_id: str
    tenant_id: str
    started_at_utc: datetime
    status: SessionStatus = SessionStatus.ACTIVE
    total_resources: int = 0
    cleaned_resources: int = 0
    resources: list[ResourceRecord] = Field(default_factory=list)
    completed_at_utc: datetime | None = None
    cleaned_at_utc: datetime | None = None


class CleanupPlan(BaseModel):
    session_id: str
    order: list[ResourceType]
    groups: dict[ResourceType, list[ResourceRecord]]
    warnings: list[str] = Field(default_factory=list)
    unordered: list[ResourceType] = Field(default_factory=list)

    def effective_order(self) -> list[ResourceType]:
        """The fixed order restricted to types this session actually holds."""
        return [t for t in self.order if self.groups.get(t)]

    def items(self) -> list[ResourceRecord]:
        """Every record in deletion order, unordered types last."""
        records: list[ResourceRecord] = []
        for resource_type in [*self.order, *self.unordered]:
            records.extend(self.groups.get(resource_type, []))
        return records


class CleanupItemStatus(StrEnum):
    PLANNED = "planned"
    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"
    FAILED = "failed"


class CleanupItemOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    record_id: str
    resource_type: ResourceType
    resource_id: str
    display_name: str
    status: CleanupItemStatus
    detail: str | None = None


class CleanupReport(BaseModel):
    session_id: str
    dry_run: bool
    outcomes: list[CleanupItemOutcome] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status != CleanupItemStatus.FAILED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == CleanupItemStatus.FAILED)


class LedgerSummary(BaseModel):
    total_sessions: int
    active_sessions: int
    total_resources: int
    resources_by_type: dict[str, int]
    tenants: list[str]
