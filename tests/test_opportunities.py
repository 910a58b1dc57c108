from datetime import UTC, datetime

import pytest

from uplinegraph.application.opportunities import (
    apply_stage_names,
    build_opportunity_index,
    build_stage_name_by_id,
    extract_contact_id,
    extract_pipeline_items,
    find_onboarding_pipeline,
    to_epoch_ms,
)
from uplinegraph.domain.models import Node, OpportunitySummary

PIPELINES = [
    {"id": "p-sales", "name": "Sales"},
    {
        "id": "p-onboard",
        "name": "Onboarding - Agent",
        "stages": [
            {"id": "s1", "name": "Applied"},
            {"id": "s2", "name": "Contracted"},
            {"id": "s3"},
        ],
    },
]


def test_contact_id_can_be_nested() -> None:
    assert extract_contact_id({"contactId": " c1 "}) == "c1"
    assert extract_contact_id({"contact": {"id": "c2"}}) == "c2"
    assert extract_contact_id({"contactId": 5}) is None
    assert extract_contact_id({}) is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, 0.0),
        ("", 0.0),
        ("not a date", 0.0),
        (True, 0.0),
        (1234, 1234.0),
        ("1970-01-01T00:00:01Z", 1000.0),
        ("1970-01-01T00:00:02", 2000.0),
        (datetime(1970, 1, 1, 0, 0, 3, tzinfo=UTC), 3000.0),
    ],
)
def test_to_epoch_ms(value, expected: float) -> None:
    assert to_epoch_ms(value) == expected


def test_latest_opportunity_per_contact_wins() -> None:
    opportunities = [
        {
            "id": "o1",
            "contactId": "c1",
            "pipelineId": "p-onboard",
            "pipelineStageId": "s1",
            "createdAt": "2024-01-01T00:00:00Z",
        },
        {
            "id": "o2",
            "contact": {"id": "c1"},
            "pipelineId": "p-onboard",
            "pipelineStageId": "s2",
            "createdAt": "2023-12-01T00:00:00Z",
            "updatedAt": "2024-02-01T00:00:00Z",
            "monetaryValue": 150,
            "assignedTo": "user-9",
            "customFields": [{"id": "f1", "value": "x"}, {"value": "dropped"}],
        },
        {"id": "o3", "pipelineId": "p-onboard"},
    ]

    index = build_opportunity_index(opportunities, {"f1": "opportunity.tier"})

    assert set(index) == {"c1"}
    summary = index["c1"]
    assert summary.pipeline_stage_id == "s2"
    assert summary.monetary_value == 150
    assert summary.assigned_to == "user-9"
    assert summary.custom_fields == {"opportunity.tier": "x"}


def test_ties_keep_the_first_opportunity() -> None:
    opportunities = [
        {"contactId": "c1", "pipelineStageId": "first", "updatedAt": "2024-01-01"},
        {"contactId": "c1", "pipelineStageId": "second", "updatedAt": "2024-01-01"},
    ]

    assert build_opportunity_index(opportunities)["c1"].pipeline_stage_id == "first"


def test_pipeline_filter_ignores_other_pipelines() -> None:
    opportunities = [
        {"contactId": "c1", "pipelineId": "p-sales", "pipelineStageId": "x"},
        {"contactId": "c2", "pipeline": {"id": "p-onboard"}, "pipelineStageId": "s1"},
    ]

    index = build_opportunity_index(opportunities, pipeline_id="p-onboard")

    assert set(index) == {"c2"}
    assert index["c2"].pipeline_id == "p-onboard"


@pytest.mark.parametrize(
    "payload",
    [
        PIPELINES,
        {"pipelines": PIPELINES},
        {"data": PIPELINES},
        {"pipelines": {"pipelines": PIPELINES}},
    ],
)
def test_pipeline_envelopes(payload) -> None:
    assert [item["id"] for item in extract_pipeline_items(payload)] == [
        "p-sales",
        "p-onboard",
    ]


def test_pipeline_envelopes_without_items() -> None:
    assert extract_pipeline_items(None) == []
    assert extract_pipeline_items({"unexpected": []}) == []


def test_onboarding_pipeline_lookup() -> None:
    assert find_onboarding_pipeline(PIPELINES)["id"] == "p-onboard"
    assert find_onboarding_pipeline(PIPELINES, pipeline_id="p-sales")["id"] == "p-sales"
    assert (
        find_onboarding_pipeline(PIPELINES, pipeline_name="sales")["id"] == "p-sales"
    )
    fuzzy = [{"id": "p-x", "name": "Agent onboarding (2024)"}]
    assert find_onboarding_pipeline(fuzzy, pipeline_name="missing")["id"] == "p-x"
    assert find_onboarding_pipeline([{"id": "p", "name": "Sales"}]) is None
    assert find_onboarding_pipeline([]) is None


def test_stage_names_are_applied_to_nodes() -> None:
    stage_names = build_stage_name_by_id(PIPELINES[1])
    nodes = [
        Node(
            id="a",
            display_name="A",
            upline_highest_stage="old",
            opportunity=OpportunitySummary(pipeline_stage_id="s2"),
        ),
        Node(id="b", display_name="B", opportunity=OpportunitySummary()),
        Node(id="c", display_name="C", upline_highest_stage="kept"),
    ]

    assert stage_names == {"s1": "Applied", "s2": "Contracted"}
    assert apply_stage_names(nodes, stage_names) == 1
    assert nodes[0].upline_highest_stage == "Contracted"
    assert nodes[2].upline_highest_stage == "kept"
    assert apply_stage_names(nodes, {}) == 0
