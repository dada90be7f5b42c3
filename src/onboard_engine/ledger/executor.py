"""Cleanup execution over a session's plan, dry-run or live.

Deletions run one at a time in plan order. A failed item is logged and recorded
in the report; it never stops the rest of the plan.
"""

from __future__ import annotations

import logging
import uuid

import httpx

from onboard_engine.audit.sink import AuditSink
from onboard_engine.identity.http import bearer, parse_error_envelope
from onboard_engine.ledger.planner import CleanupPlanner
from onboard_engine.ledger.store import ResourceLedger
from onboard_engine.models.audit import AuditEvent, AuditEventKind
from onboard_engine.models.ledger import (
    CleanupItemOutcome,
    CleanupItemStatus,
    CleanupReport,
    ResourceRecord,
)

logger = logging.getLogger(__name__)


class CleanupExecutor:
    def __init__(
        self,
        ledger: ResourceLedger,
        client: httpx.AsyncClient,
        *,
        planner: CleanupPlanner | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self._ledger = ledger
        self._client = client
        self._planner = planner or CleanupPlanner(ledger)
        self._audit = audit

    async def execute(
        self, session_id: str, access_token: str, *, dry_run: bool = True
    ) -> CleanupReport:
        """Delete (or, on a dry run, only list) every resource of an active session.

        ``cleaned_resources`` on the session becomes the number of items processed;
        per-item results are in the returned report.
        """
        plan = self._planner.plan(session_id)
        self._ledger.begin_cleanup(session_id)
        mode = "DRY RUN" if dry_run else "LIVE"
        logger.info("%s cleanup for session %s", mode, session_id)

        report = CleanupReport(session_id=session_id, dry_run=dry_run, warnings=plan.warnings)
        try:
            for record in plan.items():
                if dry_run:
                    logger.info(
                        "[DRY RUN] Would delete %s: %s",
                        record.resource_type.value,
                        record.display_name,
                    )
                    outcome = _outcome(record, CleanupItemStatus.PLANNED)
                else:
                    outcome = await self._delete(record, access_token)
                report.outcomes.append(outcome)
        except BaseException:
            self._ledger.abort_cleanup(session_id)
            raise

        self._ledger.finish_cleanup(session_id, report.processed, dry_run=dry_run)
        logger.info(
            "Cleanup %s completed: %d processed, %d failed",
            "preview" if dry_run else "execution",
            report.processed,
            report.failed,
        )

        if self._audit is not None:
            session = self._ledger.require(session_id)
            await self._audit.emit(
                AuditEvent(
                    kind=AuditEventKind.CLEANUP_EXECUTED,
                    tenant_id=session.tenant_id,
                    succeeded=report.failed == 0,
                    session_id=session_id,
                    metadata={
                        "dry_run": dry_run,
                        "processed": report.processed,
                        "failed": report.failed,
                        "run_id": uuid.uuid4().hex,
                    },
                )
            )
        return report

    async def _delete(self, record: ResourceRecord, access_token: str) -> CleanupItemOutcome:
        kind = record.resource_type.value
        logger.info("[LIVE] Deleting %s: %s", kind, record.display_name)
        try:
            response = await self._client.delete(record.endpoint_hint, headers=bearer(access_token))
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("Failed to clean %s %s: %s", kind, record.resource_id, exc)
            return _outcome(record, CleanupItemStatus.FAILED, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error cleaning %s %s", kind, record.resource_id)
            return _outcome(record, CleanupItemStatus.FAILED, repr(exc))

        if response.is_success:
            return _outcome(record, CleanupItemStatus.DELETED)
        if response.status_code == 404:
            logger.info("%s %s already absent", kind, record.resource_id)
            return _outcome(record, CleanupItemStatus.ALREADY_ABSENT)

        error = parse_error_envelope(response)
        detail = str(error) if error else f"HTTP {response.status_code}"
        logger.error("Failed to clean %s %s: %s", kind, record.resource_id, detail)
        return _outcome(record, CleanupItemStatus.FAILED, detail)


def _outcome(
    record: ResourceRecord, status: CleanupItemStatus, detail: str | None = None
) -> CleanupItemOutcome:
    return CleanupItemOutcome(
        record_id=record.id,
        resource_type=record.resource_type,
        resource_id=record.resource_id,
        display_name=record.display_name,
        status=status,
        detail=detail,
    )
