"""Tests for cleanup execution."""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import pytest

from onboard_engine.audit.sink import InMemoryAuditSink
from onboard_engine.errors import SessionNotFound, SessionStateError
from onboard_engine.ledger.executor import CleanupExecutor
from onboard_engine.ledger.store import ResourceLedger
from onboard_engine.models.audit import AuditEventKind
from onboard_engine.models.ledger import CleanupItemStatus, SessionStatus

GRAPH = "https://graph.example.test/v1.0"


@pytest.fixture
def ledger(tmp_path: Path) -> ResourceLedger:
    return ResourceLedger(tmp_path / "ledger.json")


def _client(responses: dict[str, object], seen: list) -> httpx.AsyncClient:
    """Answer DELETEs by resource path; unlisted paths succeed with 204."""

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        item = responses.get(request.url.path, 204)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, tuple):
            return httpx.Response(item[0], json=item[1])
        return httpx.Response(item)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _populate(ledger: ResourceLedger) -> str:
    session_id = ledger.open("T1")
    ledger.track(session_id, "user", "U1", "Demo User", f"{GRAPH}/users/U1")
    ledger.track(session_id, "license", "L1", "E5", f"{GRAPH}/users/U1/licenseDetails/L1", "U1")
    ledger.track(session_id, "file", "F1", "deck.pptx", f"{GRAPH}/users/U1/drive/items/F1")
    ledger.track(session_id, "team", "TM1", "Demo Team", f"{GRAPH}/groups/TM1")
    return session_id


@pytest.mark.asyncio
async def test_dry_run_makes_no_calls_and_returns_to_active(ledger: ResourceLedger) -> None:
    session_id = _populate(ledger)
    seen: list[httpx.Request] = []
    executor = CleanupExecutor(ledger, _client({}, seen))

    report = await executor.execute(session_id, "tok", dry_run=True)

    assert seen == []
    assert report.dry_run is True
    assert [o.resource_id for o in report.outcomes] == ["F1", "L1", "U1", "TM1"]
    assert all(o.status == CleanupItemStatus.PLANNED for o in report.outcomes)
    session = ledger.require(session_id)
    assert session.status == SessionStatus.ACTIVE
    assert session.cleaned_resources == 4


@pytest.mark.asyncio
async def test_live_run_deletes_in_dependency_order(ledger: ResourceLedger) -> None:
    session_id = _populate(ledger)
    seen: list[httpx.Request] = []
    executor = CleanupExecutor(ledger, _client({}, seen))

    report = await executor.execute(session_id, "tok", dry_run=False)

    assert [r.method for r in seen] == ["DELETE"] * 4
    assert [r.url.path.rsplit("/", 1)[-1] for r in seen] == ["F1", "L1", "U1", "TM1"]
    assert all(r.headers["Authorization"] == "Bearer tok" for r in seen)
    assert report.failed == 0
    session = ledger.require(session_id)
    assert session.status == SessionStatus.CLEANED
    assert session.cleaned_resources == 4


@pytest.mark.asyncio
async def test_item_failures_do_not_abort(ledger: ResourceLedger) -> None:
    session_id = _populate(ledger)
    seen: list[httpx.Request] = []
    responses = {
        "/v1.0/users/U1/drive/items/F1": httpx.ConnectError("reset"),
        "/v1.0/users/U1/licenseDetails/L1": (
            403,
            {"error": {"code": "Authorization_RequestDenied", "message": "Insufficient privileges"}},
        ),
        "/v1.0/groups/TM1": 404,
    }
    executor = CleanupExecutor(ledger, _client(responses, seen))

    report = await executor.execute(session_id, "tok", dry_run=False)

    assert len(seen) == 4
    statuses = {o.resource_id: o.status for o in report.outcomes}
    assert statuses == {
        "F1": CleanupItemStatus.FAILED,
        "L1": CleanupItemStatus.FAILED,
        "U1": CleanupItemStatus.DELETED,
        "TM1": CleanupItemStatus.ALREADY_ABSENT,
    }
    assert "Authorization_RequestDenied" in report.outcomes[1].detail
    assert report.processed == 4
    assert report.failed == 2
    assert report.succeeded == 2

    session = ledger.require(session_id)
    assert session.status == SessionStatus.CLEANED
    assert session.cleaned_resources == session.total_resources == 4


@pytest.mark.asyncio
async def test_warnings_are_carried_into_report(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    ledger.track(session_id, "user", "U1", "Demo User", f"{GRAPH}/users/U1")
    executor = CleanupExecutor(ledger, _client({}, []))

    report = await executor.execute(session_id, "tok")

    assert report.warnings == [
        "Users found without tracked licenses - may leave orphaned assignments"
    ]


@pytest.mark.asyncio
async def test_emits_audit_event(ledger: ResourceLedger) -> None:
    session_id = _populate(ledger)
    audit = InMemoryAuditSink()
    executor = CleanupExecutor(ledger, _client({"/v1.0/groups/TM1": 500}, []), audit=audit)

    await executor.execute(session_id, "tok", dry_run=False)

    [event] = audit.events
    assert event.kind == AuditEventKind.CLEANUP_EXECUTED
    assert event.session_id == session_id
    assert event.tenant_id == "T1"
    assert event.succeeded is False
    assert event.metadata["processed"] == 4
    assert event.metadata["failed"] == 1


@pytest.mark.asyncio
async def test_cleaned_session_cannot_be_cleaned_again(ledger: ResourceLedger) -> None:
    session_id = _populate(ledger)
    executor = CleanupExecutor(ledger, _client({}, []))
    await executor.execute(session_id, "tok", dry_run=False)

    with pytest.raises(SessionStateError):
        await executor.execute(session_id, "tok", dry_run=False)


@pytest.mark.asyncio
async def test_unknown_session_raises(ledger: ResourceLedger) -> None:
    executor = CleanupExecutor(ledger, _client({}, []))
    with pytest.raises(SessionNotFound):
        await executor.execute("demo-missing", "tok")


@pytest.mark.asyncio
async def test_unexpected_item_error_does_not_abort_the_plan(ledger: ResourceLedger) -> None:
    session_id = _populate(ledger)
    seen: list[httpx.Request] = []
    executor = CleanupExecutor(
        ledger, _client({"/v1.0/users/U1/licenseDetails/L1": RuntimeError("boom")}, seen)
    )

    report = await executor.execute(session_id, "tok", dry_run=False)

    statuses = {o.resource_id: o.status for o in report.outcomes}
    assert statuses["L1"] == CleanupItemStatus.FAILED
    assert statuses["U1"] == CleanupItemStatus.DELETED
    assert report.processed == 4
    assert report.failed == 1
    assert ledger.require(session_id).status == SessionStatus.CLEANED


@pytest.mark.asyncio
async def test_unencodable_token_fails_items_without_sticking_the_session(
    ledger: ResourceLedger,
) -> None:
    session_id = _populate(ledger)
    seen: list[httpx.Request] = []
    executor = CleanupExecutor(ledger, _client({}, seen))

    report = await executor.execute(session_id, "töken", dry_run=False)

    assert seen == []
    assert report.failed == 4
    session = ledger.require(session_id)
    assert session.status == SessionStatus.CLEANED
    assert session.cleaned_resources == 4


@pytest.mark.asyncio
async def test_interrupted_run_returns_session_to_active(ledger: ResourceLedger) -> None:
    session_id = _populate(ledger)
    seen: list[httpx.Request] = []
    executor = CleanupExecutor(
        ledger, _client({"/v1.0/users/U1": asyncio.CancelledError()}, seen)
    )

    with pytest.raises(asyncio.CancelledError):
        await executor.execute(session_id, "tok", dry_run=False)

    session = ledger.require(session_id)
    assert session.status == SessionStatus.ACTIVE
    assert session.cleaned_resources == 0

    retry = CleanupExecutor(ledger, _client({}, []))
    report = await retry.execute(session_id, "tok", dry_run=False)
    assert report.failed == 0
    assert ledger.require(session_id).status == SessionStatus.CLEANED
