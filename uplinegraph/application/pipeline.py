"""Pipeline orchestration from raw CRM contacts to a hierarchy snapshot."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from uplinegraph.application.assembly import AssembledForest, TreeAssembler
from uplinegraph.application.indexing import build_identity_index
from uplinegraph.application.issues import (
    IssueReporter,
    IssueSets,
    collect_issue_sets,
)
from uplinegraph.application.normalizer import normalize_records
from uplinegraph.application.opportunities import (
    apply_stage_names,
    build_opportunity_index,
    build_stage_name_by_id,
    extract_pipeline_items,
    find_onboarding_pipeline,
)
from uplinegraph.application.resolver import ResolutionResult, UplineResolver
from uplinegraph.application.synthetic import materialize_synthetic_nodes
from uplinegraph.core.config import EngineSettings
from uplinegraph.domain.contracts import SnapshotDocument, SnapshotStatsContract
from uplinegraph.domain.models import Node, OpportunitySummary, RawRecord

logger = logging.getLogger(__name__)


def build_field_key_map(definitions: Iterable[Mapping[str, Any]]) -> dict[str, str]:
    """Map custom field ids to their stable ``fieldKey`` names."""

    keys: dict[str, str] = {}
    for definition in definitions:
        field_id = definition.get("id")
        field_key = definition.get("fieldKey") or definition.get("field_key")
        if field_id and field_key:
            keys[str(field_id)] = str(field_key)
    return keys


def split_field_definitions(
    definitions: Iterable[Mapping[str, Any]],
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Separate contact field definitions from opportunity ones."""

    contact: list[dict[str, Any]] = []
    opportunity: list[dict[str, Any]] = []
    for definition in definitions:
        model = str(definition.get("model") or "contact").lower()
        if model == "opportunity":
            opportunity.append(dict(definition))
        elif model == "contact":
            contact.append(dict(definition))
    return contact, opportunity


def compute_stats(nodes: Sequence[Node], branches: int) -> SnapshotStatsContract:
    return SnapshotStatsContract(
        branches=branches,
        producers=sum(
            1 for node in nodes if node.license_number and not node.is_synthetic
        ),
        enhanced=sum(1 for node in nodes if node.has_vendor_affiliation),
    )


@dataclass(frozen=True)
class PipelineRun:
    """Intermediate artefacts of the most recent run, kept for diagnostics."""

    nodes: tuple[Node, ...]
    resolution: ResolutionResult
    issue_sets: IssueSets
    forest: AssembledForest


@dataclass
class SnapshotPipeline:
    """Run the six resolution stages over one batch of records."""

    settings: EngineSettings = field(default_factory=EngineSettings)
    _last_run: PipelineRun | None = field(default=None, init=False, repr=False)

    @property
    def last_run(self) -> PipelineRun | None:
        return self._last_run

    def run(
        self,
        records: Iterable[RawRecord],
        *,
        opportunities: Mapping[str, OpportunitySummary] | None = None,
        stage_names: Mapping[str, str] | None = None,
        custom_field_defs: Sequence[Mapping[str, Any]] = (),
        opportunity_custom_field_defs: Sequence[Mapping[str, Any]] = (),
        generated_at: datetime | None = None,
    ) -> SnapshotDocument:
        """Build a snapshot document from already-decoded records."""

        settings = self.settings
        nodes = normalize_records(
            records, settings.field_keys, opportunities=opportunities
        )
        logger.info("Normalised %d records", len(nodes))

        index = build_identity_index(nodes)
        materialized = materialize_synthetic_nodes(nodes, index)
        resolution = UplineResolver(settings).resolve(materialized)

        working = materialized.nodes
        if stage_names:
            updated = apply_stage_names(working, stage_names)
            logger.info("Applied opportunity stage names to %d nodes", updated)

        issue_sets = collect_issue_sets(working, materialized.index, resolution)
        forest = TreeAssembler(
            issue_sets, fallback_root_id=resolution.fallback_root_id
        ).assemble(working)
        issues = IssueReporter(max_sample_size=settings.max_issue_sample_size).build(
            issue_sets, working
        )

        self._last_run = PipelineRun(
            nodes=working,
            resolution=resolution,
            issue_sets=issue_sets,
            forest=forest,
        )
        return SnapshotDocument(
            generated_at=generated_at or datetime.now(UTC),
            stats=compute_stats(working, forest.branches),
            issues=issues,
            hierarchy=list(forest.hierarchy),
            custom_field_defs=[dict(item) for item in custom_field_defs],
            opportunity_custom_field_defs=[
                dict(item) for item in opportunity_custom_field_defs
            ],
        )

    def run_payloads(
        self,
        contacts: Iterable[Mapping[str, Any]],
        *,
        field_definitions: Iterable[Mapping[str, Any]] = (),
        opportunities: Iterable[Mapping[str, Any]] = (),
        pipelines: Any = None,
        generated_at: datetime | None = None,
    ) -> SnapshotDocument:
        """Build a snapshot from CRM payloads plus their side data.

        Custom field ids are resolved through ``field_definitions``. When an
        onboarding pipeline can be found among ``pipelines`` only its
        opportunities are indexed and its stage names are applied.
        """

        definitions = [item for item in field_definitions if isinstance(item, Mapping)]
        field_keys = build_field_key_map(definitions)
        contact_defs, opportunity_defs = split_field_definitions(definitions)
        records = [
            RawRecord.from_payload(payload, field_keys)
            for payload in contacts
            if isinstance(payload, Mapping)
        ]

        onboarding = find_onboarding_pipeline(
            extract_pipeline_items(pipelines),
            pipeline_id=self.settings.onboarding_pipeline_id,
            pipeline_name=self.settings.onboarding_pipeline_name,
        )
        pipeline_id = None
        if onboarding is not None:
            pipeline_id = str(onboarding.get("id") or onboarding.get("_id") or "")
            pipeline_id = pipeline_id or None
        opportunity_index = build_opportunity_index(
            opportunities, field_keys, pipeline_id=pipeline_id
        )

        return self.run(
            records,
            opportunities=opportunity_index,
            stage_names=build_stage_name_by_id(onboarding),
            custom_field_defs=contact_defs,
            opportunity_custom_field_defs=opportunity_defs,
            generated_at=generated_at,
        )


def build_snapshot(
    records: Iterable[RawRecord],
    settings: EngineSettings | None = None,
    *,
    generated_at: datetime | None = None,
    **options: Any,
) -> SnapshotDocument:
    """Functional entry point: records in, snapshot document out."""

    pipeline = SnapshotPipeline(settings or EngineSettings())
    return pipeline.run(records, generated_at=generated_at, **options)


__all__ = [
    "PipelineRun",
    "SnapshotPipeline",
    "build_field_key_map",
    "build_snapshot",
    "compute_stats",
    "split_field_definitions",
]
