"""Resource ledger, cleanup planning, and cleanup execution."""

from onboard_engine.ledger.executor import CleanupExecutor
from onboard_engine.ledger.planner import CLEANUP_ORDER, CleanupPlanner
from onboard_engine.ledger.store import ResourceLedger

__all__ = ["CLEANUP_ORDER", "CleanupExecutor", "CleanupPlanner", "ResourceLedger"]
