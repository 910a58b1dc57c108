from __future__ import annotations

import pytest

from uplinegraph.application.analysis import (
    analyze_hierarchy,
    build_hierarchy_graph,
    upline_parent_report,
)
from uplinegraph.application.pipeline import build_snapshot
from uplinegraph.domain.contracts import SnapshotDocument


@pytest.fixture()
def document(make_record, fixed_time) -> SnapshotDocument:
    return build_snapshot(
        [
            make_record("A", license="111"),
            make_record("B", license="112", upline="111"),
            make_record("C", license="113", upline="999"),
            make_record("J"),
            make_record("X", license="700", upline="700"),
        ],
        generated_at=fixed_time,
    )


def test_graph_mirrors_the_nested_hierarchy(document: SnapshotDocument) -> None:
    graph = build_hierarchy_graph(document.hierarchy)

    assert graph.number_of_nodes() == 6
    assert set(graph.edges) == {("A", "B"), ("upline:999", "C")}
    assert graph.nodes["upline:999"]["is_synthetic"] is True
    assert graph.nodes["B"]["upline_source"] == "license-number"


def test_analysis_summary(document: SnapshotDocument) -> None:
    analysis = analyze_hierarchy(document)

    assert analysis.node_count == 6
    assert analysis.root_count == 4
    assert analysis.depth_distribution == {1: 4, 2: 2}
    assert analysis.max_depth == 2
    assert analysis.source_counts["license-number"] == 2
    assert analysis.source_counts["unknown"] == 4
    assert analysis.source_counts["email"] == 0
    assert analysis.matched_uplines == 2
    assert analysis.is_forest
    (unmatched,) = analysis.unmatched_uplines
    assert unmatched.id == "X"
    assert unmatched.stated_upline_identifier == "700"
    assert unmatched.reason == "Upline not found"

    payload = analysis.as_dict()
    assert payload["depthDistribution"] == {"1": 4, "2": 2}
    assert payload["unmatchedUplines"][0]["statedUplineIdentifier"] == "700"


def test_empty_snapshot_analysis(fixed_time) -> None:
    analysis = analyze_hierarchy(SnapshotDocument(generated_at=fixed_time))

    assert analysis.node_count == 0
    assert analysis.max_depth == 0
    assert analysis.is_forest
    assert analysis.unmatched_uplines == []


def test_upline_parent_report(document: SnapshotDocument) -> None:
    reports = upline_parent_report(document, ["111", "999", "700", "555"])
    by_identifier = {report.upline_identifier: report for report in reports}

    direct = by_identifier["111"]
    assert direct.contact_count == 1
    (placement,) = direct.placements
    assert placement.parent_id == "A"
    assert placement.matches_upline
    assert not placement.synthetic
    assert placement.contacts == ("Agent B",)

    (placeholder,) = by_identifier["999"].placements
    assert placeholder.parent_id == "upline:999"
    assert placeholder.synthetic
    assert placeholder.matches_upline

    (unassigned,) = by_identifier["700"].placements
    assert unassigned.parent_id is None
    assert unassigned.parent_label == "Unassigned Root"
    assert not unassigned.matches_upline

    assert by_identifier["555"].contact_count == 0
    assert by_identifier["555"].placements == ()
    assert by_identifier["111"].as_dict()["placements"][0]["parentId"] == "A"
