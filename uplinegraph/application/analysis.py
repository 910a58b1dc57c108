"""Structural diagnostics over a built snapshot.

The snapshot's nested hierarchy is loaded into a ``networkx`` directed graph
(edges point from parent to child) so depth, source and placement questions
can be answered without re-running the resolver.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import networkx as nx

from uplinegraph.core.normalization import normalize_digits
from uplinegraph.domain.contracts import SnapshotDocument, TreeNodeContract
from uplinegraph.domain.models import UplineSource


def build_hierarchy_graph(roots: Iterable[TreeNodeContract]) -> nx.DiGraph:
    graph = nx.DiGraph()
    stack: list[tuple[TreeNodeContract, str | None]] = [
        (root, None) for root in reversed(list(roots))
    ]
    while stack:
        node, parent_id = stack.pop()
        graph.add_node(
            node.id,
            label=node.label,
            license_number=node.license_number,
            email=node.email,
            level=node.level,
            is_synthetic=node.is_synthetic,
            upline_source=UplineSource(node.upline_source).value,
            stated_upline_identifier=node.raw.upline_identifier,
            stated_upline_email=node.raw.upline_email,
            upline_not_found=node.issues.upline_not_found,
        )
        if parent_id is not None:
            graph.add_edge(parent_id, node.id)
        stack.extend((child, node.id) for child in reversed(node.children))
    return graph


@dataclass(frozen=True)
class UnmatchedUpline:
    id: str
    label: str
    license_number: str | None
    stated_upline_identifier: str | None
    stated_upline_email: str | None
    reason: str


@dataclass
class HierarchyAnalysis:
    node_count: int
    root_count: int
    depth_distribution: dict[int, int]
    max_depth: int
    source_counts: dict[str, int]
    matched_uplines: int
    unmatched_uplines: list[UnmatchedUpline] = field(default_factory=list)
    is_forest: bool = True

    def as_dict(self) -> dict[str, Any]:
        return {
            "nodeCount": self.node_count,
            "rootCount": self.root_count,
            "depthDistribution": {
                str(level): count for level, count in self.depth_distribution.items()
            },
            "maxDepth": self.max_depth,
            "sourceCounts": dict(self.source_counts),
            "matchedUplines": self.matched_uplines,
            "unmatchedUplines": [
                {
                    "id": entry.id,
                    "label": entry.label,
                    "licenseNumber": entry.license_number,
                    "statedUplineIdentifier": entry.stated_upline_identifier,
                    "statedUplineEmail": entry.stated_upline_email,
                    "reason": entry.reason,
                }
                for entry in self.unmatched_uplines
            ],
            "isForest": self.is_forest,
        }


def analyze_hierarchy(document: SnapshotDocument) -> HierarchyAnalysis:
    """Depth distribution, upline source breakdown and unmatched uplines."""

    graph = build_hierarchy_graph(document.hierarchy)
    levels = Counter(data["level"] for _, data in graph.nodes(data=True))
    sources: Counter[str] = Counter({source.value: 0 for source in UplineSource})
    matched = 0
    unmatched: list[UnmatchedUpline] = []
    for node_id, data in graph.nodes(data=True):
        source = data["upline_source"]
        sources[source] += 1
        if source != UplineSource.UNKNOWN.value:
            matched += 1
            continue
        if data["stated_upline_identifier"] or data["stated_upline_email"]:
            unmatched.append(
                UnmatchedUpline(
                    id=node_id,
                    label=data["label"],
                    license_number=data["license_number"],
                    stated_upline_identifier=data["stated_upline_identifier"],
                    stated_upline_email=data["stated_upline_email"],
                    reason=(
                        "Upline not found"
                        if data["upline_not_found"]
                        else "Unknown source"
                    ),
                )
            )

    return HierarchyAnalysis(
        node_count=graph.number_of_nodes(),
        root_count=len(document.hierarchy),
        depth_distribution=dict(sorted(levels.items())),
        max_depth=max(levels, default=0),
        source_counts=dict(sources),
        matched_uplines=matched,
        unmatched_uplines=unmatched,
        is_forest=graph.number_of_nodes() == 0 or nx.is_branching(graph),
    )


@dataclass(frozen=True)
class ParentPlacement:
    """Where contacts stating one upline identifier ended up."""

    parent_id: str | None
    parent_label: str
    parent_license_number: str | None
    synthetic: bool
    matches_upline: bool
    contacts: tuple[str, ...]


@dataclass(frozen=True)
class UplineParentReport:
    upline_identifier: str
    contact_count: int
    placements: tuple[ParentPlacement, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "uplineIdentifier": self.upline_identifier,
            "contactCount": self.contact_count,
            "placements": [
                {
                    "parentId": placement.parent_id,
                    "parentLabel": placement.parent_label,
                    "parentLicenseNumber": placement.parent_license_number,
                    "synthetic": placement.synthetic,
                    "matchesUpline": placement.matches_upline,
                    "contacts": list(placement.contacts),
                }
                for placement in self.placements
            ],
        }


def _placement(
    graph: nx.DiGraph, parent_id: str | None, target: str, contacts: list[str]
) -> ParentPlacement:
    if parent_id is None:
        return ParentPlacement(
            parent_id=None,
            parent_label="Unassigned Root",
            parent_license_number=None,
            synthetic=False,
            matches_upline=False,
            contacts=tuple(sorted(contacts, key=str.casefold)),
        )
    data = graph.nodes[parent_id]
    license_number = data["license_number"]
    return ParentPlacement(
        parent_id=parent_id,
        parent_label=data["label"],
        parent_license_number=license_number,
        synthetic=bool(data["is_synthetic"]),
        matches_upline=bool(license_number)
        and normalize_digits(license_number) == target,
        contacts=tuple(sorted(contacts, key=str.casefold)),
    )


def upline_parent_report(
    document: SnapshotDocument, upline_identifiers: Sequence[str]
) -> list[UplineParentReport]:
    """For each identifier, group the contacts that state it by placed parent."""

    graph = build_hierarchy_graph(document.hierarchy)
    reports: list[UplineParentReport] = []
    for identifier in upline_identifiers:
        target = normalize_digits(identifier)
        by_parent: dict[str | None, list[str]] = {}
        for node_id, data in graph.nodes(data=True):
            stated = normalize_digits(data["stated_upline_identifier"])
            if not target or stated != target:
                continue
            parent_id = next(iter(graph.predecessors(node_id)), None)
            by_parent.setdefault(parent_id, []).append(data["label"])
        reports.append(
            UplineParentReport(
                upline_identifier=identifier,
                contact_count=sum(len(labels) for labels in by_parent.values()),
                placements=tuple(
                    _placement(graph, parent_id, target, labels)
                    for parent_id, labels in by_parent.items()
                ),
            )
        )
    return reports


__all__ = [
    "HierarchyAnalysis",
    "ParentPlacement",
    "UnmatchedUpline",
    "UplineParentReport",
    "analyze_hierarchy",
    "build_hierarchy_graph",
    "upline_parent_report",
]
