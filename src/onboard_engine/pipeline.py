"""Pipeline: wires a successful sign-in into the ledger and tears sessions down.

The orchestrator and the ledger know nothing about each other; this module is
where a signed-in principal becomes a tracked demo session, and where a session
is planned, cleaned, and closed.
"""

from __future__ import annotations

from onboard_engine.audit.sink import AuditSink
from onboard_engine.ledger.executor import CleanupExecutor
from onboard_engine.ledger.planner import CleanupPlanner
from onboard_engine.ledger.store import ResourceLedger
from onboard_engine.models.audit import AuditEvent, AuditEventKind
from onboard_engine.models.auth import AuthResult
from onboard_engine.models.ledger import CleanupPlan, CleanupReport


async def register_sign_in(result: AuthResult, ledger: ResourceLedger, audit: AuditSink) -> str:
    """Open a demo session for the signed-in principal's tenant."""
    if not result.succeeded or result.principal is None:
        code = result.error.code if result.error else "UNKNOWN"
        raise ValueError(f"Cannot register a failed sign-in ({code})")

    principal = result.principal
    session_id = ledger.open(principal.tenant.tenant_id)
    metadata: dict = {"principal_name": principal.principal_name}
    if result.provisioning is not None:
        metadata["backing_resource_status"] = result.provisioning.status
    await audit.emit(
        AuditEvent(
            kind=AuditEventKind.SESSION_STARTED,
            principal_id=principal.id,
            tenant_id=principal.tenant.tenant_id,
            succeeded=True,
            session_id=session_id,
            metadata=metadata,
        )
    )
    return session_id


def preview_cleanup(ledger: ResourceLedger, session_id: str) -> CleanupPlan:
    return CleanupPlanner(ledger).plan(session_id)


async def teardown_session(
    executor: CleanupExecutor,
    session_id: str,
    access_token: str,
    *,
    dry_run: bool = True,
) -> CleanupReport:
    return await executor.execute(session_id, access_token, dry_run=dry_run)


async def complete_session(
    ledger: ResourceLedger, session_id: str, audit: AuditSink, principal_id: str = ""
) -> None:
    """Close a session for good. It can no longer be tracked against or cleaned."""
    ledger.complete(session_id)
    session = ledger.require(session_id)
    await audit.emit(
        AuditEvent(
            kind=AuditEventKind.SESSION_COMPLETED,
            principal_id=principal_id,
            tenant_id=session.tenant_id,
            succeeded=True,
            session_id=session_id,
            metadata={"total_resources": session.total_resources},
        )
    )
