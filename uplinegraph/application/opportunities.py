"""Onboarding opportunity enrichment.

Contacts can carry a pipeline opportunity whose stage is a better signal of
onboarding progress than the free-text stage field on the contact. This module
indexes the latest opportunity per contact and maps stage ids to names.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from uplinegraph.core.config import DEFAULT_ONBOARDING_PIPELINE_NAME
from uplinegraph.core.normalization import normalize_text
from uplinegraph.domain.models import Node, OpportunitySummary

logger = logging.getLogger(__name__)

_PIPELINE_COLLECTION_KEYS = ("pipelines", "items", "data")
_STAGE_COLLECTION_KEYS = ("stages", "pipelineStages", "pipeline_stages")


def _first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _as_identifier(value: Any) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int)):
        text = str(value).strip()
        return text or None
    return None


def extract_contact_id(opportunity: Mapping[str, Any]) -> str | None:
    """Contact id of an opportunity, whether flat or nested under ``contact``."""

    direct = _first_present(opportunity, "contactId", "contact_id", "contact")
    if isinstance(direct, Mapping):
        direct = _first_present(direct, "id", "contactId", "contact_id")
    if isinstance(direct, str):
        return direct.strip() or None
    return None


def extract_pipeline_id(opportunity: Mapping[str, Any]) -> str | None:
    direct = _first_present(opportunity, "pipelineId", "pipeline_id", "pipeline")
    if isinstance(direct, Mapping):
        direct = _first_present(direct, "id", "_id", "pipelineId", "pipeline_id")
    return _as_identifier(direct)


def to_epoch_ms(value: Any) -> float:
    """Timestamp in milliseconds; unparseable or missing values sort first."""

    if isinstance(value, bool) or value is None or value == "":
        return 0.0
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, (int, float)):
        return float(value)
    elif isinstance(value, str):
        try:
            moment = datetime.fromisoformat(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.timestamp() * 1000.0


def build_opportunity_summary(
    opportunity: Mapping[str, Any],
    field_keys: Mapping[str, str] | None = None,
) -> OpportunitySummary:
    lookup = field_keys or {}
    custom: dict[str, Any] = {}
    for entry in opportunity.get("customFields") or []:
        if not isinstance(entry, Mapping) or entry.get("id") is None:
            continue
        entry_id = str(entry["id"])
        custom[lookup.get(entry_id, entry_id)] = entry.get("value")

    assigned = _first_present(opportunity, "assignedTo", "assigned_to", "assigned")
    return OpportunitySummary(
        pipeline_id=extract_pipeline_id(opportunity),
        pipeline_stage_id=_as_identifier(
            _first_present(
                opportunity, "pipelineStageId", "pipeline_stage_id", "pipelineStage"
            )
        ),
        monetary_value=_first_present(
            opportunity, "monetaryValue", "monetary_value", "value"
        ),
        assigned_to=str(assigned) if assigned else None,
        custom_fields=custom,
    )


def build_opportunity_index(
    opportunities: Iterable[Mapping[str, Any]],
    field_keys: Mapping[str, str] | None = None,
    *,
    pipeline_id: str | None = None,
) -> dict[str, OpportunitySummary]:
    """Map each contact id to its most recently touched opportunity.

    Recency is the later of the updated and created timestamps; ties keep
    the first opportunity seen. When ``pipeline_id`` is set, opportunities
    from other pipelines are ignored.
    """

    latest: dict[str, tuple[float, Mapping[str, Any]]] = {}
    for opportunity in opportunities:
        if not isinstance(opportunity, Mapping):
            continue
        contact_id = extract_contact_id(opportunity)
        if not contact_id:
            continue
        if pipeline_id and extract_pipeline_id(opportunity) != str(pipeline_id):
            continue
        sort_key = max(
            to_epoch_ms(
                _first_present(opportunity, "updatedAt", "updated_at", "dateUpdated")
            ),
            to_epoch_ms(
                _first_present(opportunity, "createdAt", "created_at", "dateAdded")
            ),
        )
        existing = latest.get(contact_id)
        if existing is not None and existing[0] >= sort_key:
            continue
        latest[contact_id] = (sort_key, opportunity)

    index = {
        contact_id: build_opportunity_summary(opportunity, field_keys)
        for contact_id, (_, opportunity) in latest.items()
    }
    logger.info("Indexed opportunities for %d contacts", len(index))
    return index


def extract_pipeline_items(payload: Any) -> list[Mapping[str, Any]]:
    """Accept the several envelope shapes the pipelines endpoint returns."""

    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, Mapping)]
    if not isinstance(payload, Mapping):
        return []
    for key in _PIPELINE_COLLECTION_KEYS:
        candidate = payload.get(key)
        if isinstance(candidate, Mapping):
            candidate = candidate.get(key)
        if isinstance(candidate, list):
            return [item for item in candidate if isinstance(item, Mapping)]
    return []


def pipeline_stages(pipeline: Mapping[str, Any] | None) -> list[Mapping[str, Any]]:
    if not pipeline:
        return []
    for key in _STAGE_COLLECTION_KEYS:
        candidate = pipeline.get(key)
        if isinstance(candidate, Mapping):
            candidate = candidate.get("stages") or candidate.get("items")
        if isinstance(candidate, list):
            return [stage for stage in candidate if isinstance(stage, Mapping)]
    return []


def build_stage_name_by_id(pipeline: Mapping[str, Any] | None) -> dict[str, str]:
    stage_names: dict[str, str] = {}
    for stage in pipeline_stages(pipeline):
        stage_id = _as_identifier(
            _first_present(stage, "id", "_id", "stageId", "stage_id")
        )
        name = _first_present(stage, "name", "label", "title")
        if stage_id and name:
            stage_names[stage_id] = str(name)
    return stage_names


def _pipeline_name(pipeline: Mapping[str, Any]) -> str:
    return normalize_text(_first_present(pipeline, "name", "title", "label") or "")


def find_onboarding_pipeline(
    pipelines: Sequence[Mapping[str, Any]],
    *,
    pipeline_id: str | None = None,
    pipeline_name: str = DEFAULT_ONBOARDING_PIPELINE_NAME,
) -> Mapping[str, Any] | None:
    """Locate the onboarding pipeline by id, then exact name, then a fuzzy name."""

    if not pipelines:
        return None
    if pipeline_id:
        for pipeline in pipelines:
            candidate_id = _as_identifier(_first_present(pipeline, "id", "_id"))
            if candidate_id == str(pipeline_id):
                return pipeline
    desired = normalize_text(pipeline_name)
    for pipeline in pipelines:
        if desired and _pipeline_name(pipeline) == desired:
            return pipeline
    for pipeline in pipelines:
        name = _pipeline_name(pipeline)
        if "onboard" in name and "agent" in name:
            return pipeline
    return None


def apply_stage_names(nodes: Iterable[Node], stage_names: Mapping[str, str]) -> int:
    """Replace each node's highest stage with its opportunity's stage name."""

    updated = 0
    if not stage_names:
        return updated
    for node in nodes:
        stage_id = node.opportunity.pipeline_stage_id if node.opportunity else None
        stage_name = stage_names.get(stage_id) if stage_id else None
        if stage_name:
            node.upline_highest_stage = stage_name
            updated += 1
    return updated


__all__ = [
    "apply_stage_names",
    "build_opportunity_index",
    "build_opportunity_summary",
    "build_stage_name_by_id",
    "extract_contact_id",
    "extract_pipeline_id",
    "extract_pipeline_items",
    "find_onboarding_pipeline",
    "pipeline_stages",
    "to_epoch_ms",
]
