"""Durable resource ledger: which resources each demo session created.

The whole ledger is one JSON object keyed by session id. It is loaded when the
ledger is constructed and rewritten in full before every mutating call returns,
through a temporary file and an atomic rename, so a crash leaves either the old
or the new ledger on disk and never a half-written one. One writer at a time.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from pydantic import RootModel, ValidationError

from onboard_engine.errors import LedgerCorrupted, SessionNotFound, SessionStateError
from onboard_engine.models.ledger import (
    DemoSession,
    LedgerSummary,
    ResourceRecord,
    ResourceType,
    SessionStatus,
)

logger = logging.getLogger(__name__)


class LedgerDocument(RootModel[dict[str, DemoSession]]):
    root: dict[str, DemoSession]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ResourceLedger:
    def __init__(self, path: Path, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self.path = path
        self._clock = clock
        self._sessions: dict[str, DemoSession] = {}
        self._load()

    # ----- Persistence -----

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            document = LedgerDocument.model_validate_json(self.path.read_text())
        except (OSError, ValidationError) as exc:
            raise LedgerCorrupted(f"Cannot read ledger at {self.path}: {exc}") from exc
        self._sessions = dict(document.root)
        logger.debug("Loaded %d session(s) from %s", len(self._sessions), self.path)

    def _commit(self, session: DemoSession) -> None:
        """Persist the ledger with ``session`` replaced, then adopt it in memory.

        If the write fails the in-memory ledger keeps its previous state.
        """
        sessions = {**self._sessions, session.session_id: session}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f".{self.path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            tmp.write_text(LedgerDocument(sessions).model_dump_json(indent=2))
            tmp.replace(self.path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        self._sessions = sessions

    # ----- Sessions -----

    def open(self, tenant_id: str) -> str:
        """Start a new active session for ``tenant_id`` and return its id."""
        now = self._clock()
        session_id = f"demo-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"
        self._commit(
            DemoSession(session_id=session_id, tenant_id=tenant_id, started_at_utc=now)
        )
        logger.info("Started demo session %s for tenant %s", session_id, tenant_id)
        return session_id

    def exists(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> DemoSession | None:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    def require(self, session_id: str) -> DemoSession:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def sessions(self) -> list[DemoSession]:
        return [s.model_copy(deep=True) for s in self._sessions.values()]

    def active_sessions(self) -> list[DemoSession]:
        return [s for s in self.sessions() if s.status == SessionStatus.ACTIVE]

    def sessions_for_tenant(self, tenant_id: str) -> list[DemoSession]:
        return [s for s in self.sessions() if s.tenant_id == tenant_id]

    def complete(self, session_id: str) -> None:
        """Close an active session. No further resources can be tracked against it."""
        session = self._live(session_id)
        if session.status != SessionStatus.ACTIVE:
            raise SessionStateError(session_id, session.status, "complete")
        session.status = SessionStatus.COMPLETED
        session.completed_at_utc = self._clock()
        self._commit(session)
        logger.info("Demo session completed: %s", session_id)

    # ----- Resources -----

    def track(
        self,
        session_id: str,
        resource_type: ResourceType | str,
        resource_id: str,
        display_name: str,
        endpoint_hint: str,
        parent_resource_id: str | None = None,
        metadata: dict | None = None,
    ) -> ResourceRecord:
        """Append a resource to a session.

        Raises SessionNotFound for an unknown session and SessionStateError for a
        session that is no longer active; the ledger is untouched in both cases.
        """
        session = self._live(session_id)
        if session.status != SessionStatus.ACTIVE:
            raise SessionStateError(session_id, session.status, "track resources in")
        resource_type = ResourceType(resource_type)
        now = self._clock()

        record = ResourceRecord(
            id=self._record_id(session, resource_type, resource_id, now),
            tenant_id=session.tenant_id,
            session_id=session_id,
            resource_type=resource_type,
            resource_id=resource_id,
            parent_resource_id=parent_resource_id,
            endpoint_hint=endpoint_hint,
            display_name=display_name,
            created_at_utc=now,
            metadata=dict(metadata or {}),
        )
        session.resources.append(record)
        session.total_resources = len(session.resources)
        self._commit(session)
        logger.info("Tracked %s: %s (%s)", resource_type.value, display_name, resource_id)
        return record

    def resources_of(self, session_id: str) -> list[ResourceRecord]:
        session = self._sessions.get(session_id)
        return list(session.resources) if session else []

    # ----- Cleanup lifecycle -----

    def begin_cleanup(self, session_id: str) -> None:
        session = self._live(session_id)
        if session.status != SessionStatus.ACTIVE:
            raise SessionStateError(session_id, session.status, "clean up")
        session.status = SessionStatus.CLEANING
        self._commit(session)

    def finish_cleanup(self, session_id: str, processed: int, *, dry_run: bool) -> None:
        session = self._live(session_id)
        if session.status != SessionStatus.CLEANING:
            raise SessionStateError(session_id, session.status, "finish cleanup of")
        session.cleaned_resources = processed
        if dry_run:
            session.status = SessionStatus.ACTIVE
        else:
            session.status = SessionStatus.CLEANED
            session.cleaned_at_utc = self._clock()
        self._commit(session)

    def abort_cleanup(self, session_id: str) -> None:
        """Return a session stuck in ``cleaning`` to ``active`` without counting anything."""
        session = self._live(session_id)
        if session.status != SessionStatus.CLEANING:
            raise SessionStateError(session_id, session.status, "abort cleanup of")
        session.status = SessionStatus.ACTIVE
        self._commit(session)
        logger.warning("Cleanup of session %s aborted; session is active again", session_id)

    # ----- Reporting -----

    def summary(self) -> LedgerSummary:
        sessions = list(self._sessions.values())
        by_type = Counter(r.resource_type.value for s in sessions for r in s.resources)
        return LedgerSummary(
            total_sessions=len(sessions),
            active_sessions=sum(1 for s in sessions if s.status == SessionStatus.ACTIVE),
            total_resources=sum(s.total_resources for s in sessions),
            resources_by_type=dict(by_type),
            tenants=list(dict.fromkeys(s.tenant_id for s in sessions)),
        )

    # ----- Internals -----

    def _live(self, session_id: str) -> DemoSession:
        """A private copy of the session to modify and hand to ``_commit``."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session.model_copy(deep=True)

    @staticmethod
    def _record_id(
        session: DemoSession, resource_type: ResourceType, resource_id: str, now: datetime
    ) -> str:
        base = f"{resource_type.value}-{resource_id}-{int(now.timestamp() * 1_000_000)}"
        taken = {r.id for r in session.resources}
        candidate, n = base, 1
        while candidate in taken:
            candidate = f"{base}-{n}"
            n += 1
        return candidate
