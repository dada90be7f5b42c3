"""Tests for the durable resource ledger."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from onboard_engine.errors import LedgerCorrupted, SessionNotFound, SessionStateError
from onboard_engine.ledger.store import ResourceLedger
from onboard_engine.models.ledger import ResourceType, SessionStatus


@pytest.fixture
def ledger_path(tmp_path: Path) -> Path:
    return tmp_path / "ledger.json"


@pytest.fixture
def ledger(ledger_path: Path) -> ResourceLedger:
    return ResourceLedger(ledger_path)


def test_open_creates_active_session_and_persists(ledger: ResourceLedger, ledger_path: Path) -> None:
    session_id = ledger.open("T1")
    session = ledger.get(session_id)
    assert session is not None
    assert session.tenant_id == "T1"
    assert session.status == SessionStatus.ACTIVE
    assert session.total_resources == 0
    assert session.resources == []

    on_disk = json.loads(ledger_path.read_text())
    assert list(on_disk) == [session_id]
    assert on_disk[session_id]["status"] == "active"


def test_session_ids_are_unique(ledger: ResourceLedger) -> None:
    ids = {ledger.open("T1") for _ in range(20)}
    assert len(ids) == 20


def test_track_appends_record(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    record = ledger.track(
        session_id,
        ResourceType.USER,
        "U1",
        "Demo User",
        "https://graph.example.test/v1.0/users/U1",
        metadata={"license": "E5"},
    )
    assert record.session_id == session_id
    assert record.tenant_id == "T1"
    assert record.resource_type == ResourceType.USER
    assert record.id.startswith("user-U1-")
    assert record.metadata == {"license": "E5"}

    session = ledger.require(session_id)
    assert session.total_resources == 1
    assert session.resources == [record]


def test_track_accepts_type_string(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    record = ledger.track(session_id, "license", "L1", "E5", "https://x", parent_resource_id="U1")
    assert record.resource_type == ResourceType.LICENSE
    assert record.parent_resource_id == "U1"


def test_track_rejects_unknown_type(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    with pytest.raises(ValueError):
        ledger.track(session_id, "printer", "P1", "Printer", "https://x")
    assert ledger.resources_of(session_id) == []


def test_repeated_resource_id_gets_distinct_record_ids(ledger_path: Path) -> None:
    frozen = datetime(2025, 1, 1, tzinfo=UTC)
    ledger = ResourceLedger(ledger_path, clock=lambda: frozen)
    session_id = ledger.open("T1")
    first = ledger.track(session_id, "file", "F1", "a.docx", "https://x")
    second = ledger.track(session_id, "file", "F1", "a.docx", "https://x")
    assert first.id != second.id
    assert ledger.require(session_id).total_resources == 2


def test_track_unknown_session_raises_and_does_not_mutate(
    ledger: ResourceLedger, ledger_path: Path
) -> None:
    ledger.open("T1")
    before = ledger_path.read_text()
    with pytest.raises(SessionNotFound):
        ledger.track("demo-missing", "user", "U1", "User", "https://x")
    assert ledger_path.read_text() == before
    assert not ledger.exists("demo-missing")


def test_resources_of_unknown_session_is_empty(ledger: ResourceLedger) -> None:
    assert ledger.resources_of("demo-missing") == []


def test_resources_keep_insertion_order(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    for rid in ("A", "B", "C"):
        ledger.track(session_id, "file", rid, rid, "https://x")
    assert [r.resource_id for r in ledger.resources_of(session_id)] == ["A", "B", "C"]


def test_ledger_reloads_from_disk(ledger: ResourceLedger, ledger_path: Path) -> None:
    session_id = ledger.open("T1")
    ledger.track(session_id, "user", "U1", "User", "https://x")

    reopened = ResourceLedger(ledger_path)
    session = reopened.require(session_id)
    assert session.total_resources == 1
    assert session.resources[0].resource_type == ResourceType.USER
    assert session.started_at_utc.tzinfo is not None


def test_corrupted_ledger_raises(ledger_path: Path) -> None:
    ledger_path.write_text("{not json")
    with pytest.raises(LedgerCorrupted):
        ResourceLedger(ledger_path)


def test_failed_save_leaves_memory_unchanged(ledger: ResourceLedger, ledger_path: Path) -> None:
    session_id = ledger.open("T1")
    ledger.path = ledger_path / "nested-under-a-file.json"
    with pytest.raises(OSError):
        ledger.track(session_id, "user", "U1", "User", "https://x")
    assert ledger.resources_of(session_id) == []


def test_failed_replace_removes_temp_file(ledger: ResourceLedger, tmp_path: Path) -> None:
    session_id = ledger.open("T1")
    target = tmp_path / "occupied"
    target.mkdir()
    (target / "keep").write_text("x")
    ledger.path = target
    with pytest.raises(OSError):
        ledger.track(session_id, "user", "U1", "User", "https://x")
    assert list(tmp_path.glob(".*.tmp")) == []
    assert ledger.resources_of(session_id) == []


def test_abort_cleanup_returns_to_active(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    with pytest.raises(SessionStateError):
        ledger.abort_cleanup(session_id)
    ledger.begin_cleanup(session_id)
    ledger.abort_cleanup(session_id)
    assert ledger.require(session_id).status == SessionStatus.ACTIVE


def test_get_returns_a_copy(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    copy = ledger.get(session_id)
    copy.status = SessionStatus.CLEANED
    assert ledger.require(session_id).status == SessionStatus.ACTIVE


def test_complete_is_terminal(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    ledger.complete(session_id)
    session = ledger.require(session_id)
    assert session.status == SessionStatus.COMPLETED
    assert session.completed_at_utc is not None
    with pytest.raises(SessionStateError):
        ledger.track(session_id, "user", "U1", "User", "https://x")
    with pytest.raises(SessionStateError):
        ledger.complete(session_id)


def test_complete_unknown_session_raises(ledger: ResourceLedger) -> None:
    with pytest.raises(SessionNotFound):
        ledger.complete("demo-missing")


def test_cleanup_transitions(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    ledger.begin_cleanup(session_id)
    assert ledger.require(session_id).status == SessionStatus.CLEANING
    with pytest.raises(SessionStateError):
        ledger.begin_cleanup(session_id)

    ledger.finish_cleanup(session_id, 0, dry_run=True)
    assert ledger.require(session_id).status == SessionStatus.ACTIVE

    ledger.begin_cleanup(session_id)
    ledger.finish_cleanup(session_id, 0, dry_run=False)
    session = ledger.require(session_id)
    assert session.status == SessionStatus.CLEANED
    assert session.cleaned_at_utc is not None


def test_queries_by_status_and_tenant(ledger: ResourceLedger) -> None:
    a = ledger.open("T1")
    b = ledger.open("T2")
    ledger.complete(b)
    assert [s.session_id for s in ledger.active_sessions()] == [a]
    assert [s.session_id for s in ledger.sessions_for_tenant("T2")] == [b]


def test_summary(ledger_path: Path) -> None:
    ticks = iter(datetime(2025, 1, 1, tzinfo=UTC) + timedelta(seconds=n) for n in range(100))
    ledger = ResourceLedger(ledger_path, clock=lambda: next(ticks))
    a = ledger.open("T1")
    b = ledger.open("T2")
    ledger.track(a, "user", "U1", "User", "https://x")
    ledger.track(a, "license", "L1", "E5", "https://x", "U1")
    ledger.track(b, "user", "U2", "User 2", "https://x")
    ledger.complete(b)

    summary = ledger.summary()
    assert summary.total_sessions == 2
    assert summary.active_sessions == 1
    assert summary.total_resources == 3
    assert summary.resources_by_type == {"user": 2, "license": 1}
    assert summary.tenants == ["T1", "T2"]
