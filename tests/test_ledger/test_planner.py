"""Tests for cleanup planning."""

from __future__ import annotations

from pathlib import Path

import pytest

from onboard_engine.errors import SessionNotFound
from onboard_engine.ledger.planner import CLEANUP_ORDER, ORPHANED_LICENSE_WARNING, CleanupPlanner
from onboard_engine.ledger.store import ResourceLedger
from onboard_engine.models.ledger import ResourceType


@pytest.fixture
def ledger(tmp_path: Path) -> ResourceLedger:
    return ResourceLedger(tmp_path / "ledger.json")


def test_fixed_order_covers_every_resource_type() -> None:
    assert set(CLEANUP_ORDER) == set(ResourceType)
    assert [t.value for t in CLEANUP_ORDER] == ["file", "email", "chat", "license", "user", "team"]


def test_user_and_license_scenario(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    ledger.track(session_id, "user", "U1", "Demo User", "https://graph/users/U1")
    ledger.track(session_id, "license", "L1", "E5", "https://graph/users/U1/license", "U1")

    plan = CleanupPlanner(ledger).plan(session_id)

    assert plan.order == list(CLEANUP_ORDER)
    assert [r.resource_id for r in plan.groups[ResourceType.LICENSE]] == ["L1"]
    assert [r.resource_id for r in plan.groups[ResourceType.USER]] == ["U1"]
    assert plan.warnings == []
    assert plan.unordered == []


def test_users_without_licenses_warn(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    ledger.track(session_id, "user", "U1", "Demo User", "https://graph/users/U1")

    plan = CleanupPlanner(ledger).plan(session_id)

    assert plan.warnings == [ORPHANED_LICENSE_WARNING]


def test_effective_order_filters_to_present_types(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    ledger.track(session_id, "user", "U1", "User", "https://x")
    ledger.track(session_id, "file", "F1", "File", "https://x")
    ledger.track(session_id, "license", "L1", "E5", "https://x", "U1")

    plan = CleanupPlanner(ledger).plan(session_id)

    assert plan.effective_order() == [ResourceType.FILE, ResourceType.LICENSE, ResourceType.USER]
    assert [r.resource_id for r in plan.items()] == ["F1", "L1", "U1"]


def test_team_only_session(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    ledger.track(session_id, "team", "TM1", "Demo Team", "https://x")

    plan = CleanupPlanner(ledger).plan(session_id)

    assert plan.effective_order() == [ResourceType.TEAM]
    assert [r.resource_id for r in plan.groups[ResourceType.TEAM]] == ["TM1"]
    assert plan.warnings == []


def test_groups_keep_insertion_order(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    for rid in ("F3", "F1", "F2"):
        ledger.track(session_id, "file", rid, rid, "https://x")

    plan = CleanupPlanner(ledger).plan(session_id)

    assert [r.resource_id for r in plan.groups[ResourceType.FILE]] == ["F3", "F1", "F2"]


def test_types_outside_a_custom_order_are_unordered(ledger: ResourceLedger) -> None:
    session_id = ledger.open("T1")
    ledger.track(session_id, "chat", "C1", "Chat", "https://x")
    ledger.track(session_id, "file", "F1", "File", "https://x")

    planner = CleanupPlanner(ledger, order=[ResourceType.FILE])
    plan = planner.plan(session_id)

    assert plan.order == [ResourceType.FILE]
    assert plan.unordered == [ResourceType.CHAT]
    assert [r.resource_id for r in plan.groups[ResourceType.CHAT]] == ["C1"]
    assert plan.warnings == ["Unknown resource type: chat"]
    assert [r.resource_id for r in plan.items()] == ["F1", "C1"]


def test_unknown_session_raises(ledger: ResourceLedger) -> None:
    with pytest.raises(SessionNotFound):
        CleanupPlanner(ledger).plan("demo-missing")
