"""JSON export of the ledger summary and individual sessions."""

from __future__ import annotations

from pathlib import Path

from onboard_engine.models.ledger import DemoSession, LedgerSummary


def export_summary_json(summary: LedgerSummary, output_path: Path) -> None:
    """Export the ledger summary as JSON."""
    output_path.write_text(summary.model_dump_json(indent=2))


def export_session_json(session: DemoSession, output_path: Path) -> None:
    """Export one demo session, with its resources, as JSON."""
    output_path.write_text(session.model_dump_json(indent=2))
