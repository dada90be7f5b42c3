"""YAML export of the ledger summary and individual sessions."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel

from onboard_engine.models.ledger import DemoSession, LedgerSummary


def _dump(model: BaseModel, output_path: Path) -> None:
    data = model.model_dump(mode="json")
    output_path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))


def export_summary_yaml(summary: LedgerSummary, output_path: Path) -> None:
    """Export the ledger summary as YAML."""
    _dump(summary, output_path)


def export_session_yaml(session: DemoSession, output_path: Path) -> None:
    """Export one demo session, with its resources, as YAML."""
    _dump(session, output_path)
