"""Flat tabular reports over the serialised hierarchy."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from uplinegraph.core import config
from uplinegraph.domain.contracts import SnapshotDocument, TreeNodeContract
from uplinegraph.domain.models import UplineSource

REPORT_COLUMNS = [
    "id",
    "label",
    "parent_id",
    "level",
    "node_type",
    "is_synthetic",
    "synthetic_kind",
    "license_number",
    "producer_number",
    "email",
    "status",
    "vendor_group",
    "upline_source",
    "upline_confidence",
    "direct_reports",
    "descendant_count",
    "stated_upline_identifier",
    "stated_upline_email",
    "missing_identifier",
    "duplicate_identifier",
    "upline_not_found",
    "cycle_break",
    "tags",
]


def iter_tree(roots: Iterable[TreeNodeContract]) -> Iterable[TreeNodeContract]:
    """Yield every node in display order (depth first, pre-order)."""

    stack = list(reversed(list(roots)))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _row(node: TreeNodeContract) -> dict[str, Any]:
    return {
        "id": node.id,
        "label": node.label,
        "parent_id": node.parent_id,
        "level": node.level,
        "node_type": node.node_type,
        "is_synthetic": node.is_synthetic,
        "synthetic_kind": node.synthetic_kind,
        "license_number": node.license_number,
        "producer_number": node.producer_number,
        "email": node.email,
        "status": node.status,
        "vendor_group": node.vendor_group,
        "upline_source": UplineSource(node.upline_source).value,
        "upline_confidence": node.upline_confidence,
        "direct_reports": node.metrics.direct_reports,
        "descendant_count": node.metrics.descendant_count,
        "stated_upline_identifier": node.raw.upline_identifier,
        "stated_upline_email": node.raw.upline_email,
        "missing_identifier": node.issues.missing_identifier,
        "duplicate_identifier": node.issues.duplicate_identifier,
        "upline_not_found": node.issues.upline_not_found,
        "cycle_break": node.issues.cycle_break,
        "tags": "; ".join(node.tags),
    }


def hierarchy_frame(document: SnapshotDocument) -> pd.DataFrame:
    """One row per node, parents before their children."""

    rows = [_row(node) for node in iter_tree(document.hierarchy)]
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def write_hierarchy_report(document: SnapshotDocument, path: Path) -> Path:
    frame = hierarchy_frame(document)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, index=False)
    return path


@dataclass(slots=True)
class CsvReportSink:
    """Snapshot sink that writes the flattened hierarchy as CSV."""

    path: Path = field(default_factory=lambda: config.SNAPSHOT_CSV)

    def write(self, document: SnapshotDocument) -> Path:
        return write_hierarchy_report(document, self.path)


__all__ = [
    "CsvReportSink",
    "REPORT_COLUMNS",
    "hierarchy_frame",
    "iter_tree",
    "write_hierarchy_report",
]
