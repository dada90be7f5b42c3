"""Data models for auth, provisioning, the resource ledger, and audit events."""

from onboard_engine.models.audit import AuditEvent, AuditEventKind
from onboard_engine.models.auth import (
    AuthenticatedPrincipal,
    AuthError,
    AuthorizationRequest,
    AuthResult,
    LicenseSku,
    ProvisioningOptions,
    TenantContext,
    TokenSet,
)
from onboard_engine.models.ledger import (
    CleanupItemOutcome,
    CleanupItemStatus,
    CleanupPlan,
    CleanupReport,
    DemoSession,
    LedgerSummary,
    ResourceRecord,
    ResourceType,
    SessionStatus,
)
from onboard_engine.models.provisioning import (
    Failed,
    NotYetAvailable,
    ProvisioningOutcome,
    ProvisioningStatus,
    Ready,
    TimedOut,
)

__all__ = [
    "AuditEvent",
    "AuditEventKind",
    "AuthError",
    "AuthResult",
    "AuthenticatedPrincipal",
    "AuthorizationRequest",
    "CleanupItemOutcome",
    "CleanupItemStatus",
    "CleanupPlan",
    "CleanupReport",
    "DemoSession",
    "Failed",
    "LedgerSummary",
    "LicenseSku",
    "NotYetAvailable",
    "ProvisioningOptions",
    "ProvisioningOutcome",
    "ProvisioningStatus",
    "Ready",
    "ResourceRecord",
    "ResourceType",
    "SessionStatus",
    "TenantContext",
    "TimedOut",
    "TokenSet",
]
