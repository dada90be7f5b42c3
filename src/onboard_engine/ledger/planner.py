"""Dependency-ordered cleanup planning.

Deletion runs most-dependent first: content before the mailboxes and chats that
hold it, license assignments before the users they belong to, users before the
teams they were added to.
"""

from __future__ import annotations

from collections.abc import Sequence

from onboard_engine.ledger.store import ResourceLedger
from onboard_engine.models.ledger import CleanupPlan, ResourceRecord, ResourceType

CLEANUP_ORDER: tuple[ResourceType, ...] = (
    ResourceType.FILE,
    ResourceType.EMAIL,
    ResourceType.CHAT,
    ResourceType.LICENSE,
    ResourceType.USER,
    ResourceType.TEAM,
)

ORPHANED_LICENSE_WARNING = "Users found without tracked licenses - may leave orphaned assignments"


class CleanupPlanner:
    def __init__(
        self, ledger: ResourceLedger, order: Sequence[ResourceType] = CLEANUP_ORDER
    ) -> None:
        self._ledger = ledger
        self._order = list(order)

    def plan(self, session_id: str) -> CleanupPlan:
        """Group a session's resources by type in deletion order.

        Types missing from the configured order still get a group, are listed in
        ``unordered`` and produce a warning. Raises SessionNotFound.
        """
        session = self._ledger.require(session_id)
        groups: dict[ResourceType, list[ResourceRecord]] = {t: [] for t in self._order}
        unordered: list[ResourceType] = []
        warnings: list[str] = []

        for record in session.resources:
            if record.resource_type not in groups:
                groups[record.resource_type] = []
                unordered.append(record.resource_type)
                warnings.append(f"Unknown resource type: {record.resource_type.value}")
            groups[record.resource_type].append(record)

        if groups.get(ResourceType.USER) and not groups.get(ResourceType.LICENSE):
            warnings.append(ORPHANED_LICENSE_WARNING)

        return CleanupPlan(
            session_id=session_id,
            order=list(self._order),
            groups=groups,
            warnings=warnings,
            unordered=unordered,
        )
