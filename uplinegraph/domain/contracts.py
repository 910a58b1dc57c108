"""Pydantic contracts for the serialised hierarchy snapshot.

The snapshot is the only durable artefact of a run. These models give it a
versioned, schema-exportable shape that rendering and reporting consumers can
validate against. Field names are snake_case in Python and camelCase on the
wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from uplinegraph.domain.models import UplineSource

CONTRACT_VERSION = "1.0.0"
SCHEMA_URI_BASE = "https://uplinegraph.dev/schemas/v1"

NodeType = Literal["leaf", "root", "intermediate"]
NodeStatus = Literal["ACTIVE", "PENDING", "INACTIVE"]


class _WireModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "use_enum_values": True,
    }


class ContractDescriptor(_WireModel):
    """Metadata embedded with the snapshot to identify the contract."""

    name: str = Field(..., description="Canonical contract identifier")
    version: str = Field(
        default=CONTRACT_VERSION,
        description="Semantic version of the contract schema",
    )
    schema_uri: str = Field(..., description="Canonical URI for the schema definition")


class NodeMetricsContract(_WireModel):
    direct_reports: int = Field(0, ge=0, description="Number of direct children")
    descendant_count: int = Field(0, ge=0, description="Nodes below this one")


class NodeIssueFlagsContract(_WireModel):
    missing_identifier: bool = False
    duplicate_identifier: bool = False
    upline_not_found: bool = False
    cycle_break: bool = False

    @property
    def has_any(self) -> bool:
        return (
            self.missing_identifier
            or self.duplicate_identifier
            or self.upline_not_found
            or self.cycle_break
        )


class StatedUplineContract(_WireModel):
    """Un-normalised upline references exactly as the record stated them."""

    upline_identifier: str | None = None
    upline_email: str | None = None
    upline_name: str | None = None
    upline_highest_stage: str | None = None
    license_number: str | None = None
    producer_number: str | None = None


class OpportunityContract(_WireModel):
    pipeline_id: str | None = None
    pipeline_stage_id: str | None = None
    monetary_value: Any = None
    assigned_to: str | None = None
    custom_fields: dict[str, Any] = Field(default_factory=dict)


class TreeNodeContract(_WireModel):
    """One node of the display-ready hierarchy, with its nested children."""

    id: str = Field(..., min_length=1)
    label: str
    license_number: str | None = None
    producer_number: str | None = None
    email: str | None = None
    phone: str | None = None
    source: str | None = None
    company_name: str | None = None
    is_synthetic: bool = False
    synthetic_kind: Literal["upline-placeholder", "duplicate-group"] | None = None
    parent_id: str | None = None
    level: int = Field(..., ge=1, description="1-based depth in the forest")
    node_type: NodeType
    status: NodeStatus
    vendor_flags: dict[str, bool] = Field(default_factory=dict)
    vendor_group: str = "combined"
    licensing_state: str | None = None
    comp_level: str | None = None
    comp_level_notes: str | None = None
    tags: list[str] = Field(default_factory=list)
    upline_source: UplineSource = Field(UplineSource.UNKNOWN, validate_default=True)
    upline_confidence: float = Field(0.0, ge=0.0, le=1.0)
    metrics: NodeMetricsContract = Field(default_factory=NodeMetricsContract)
    flags: dict[str, bool] = Field(default_factory=dict)
    issues: NodeIssueFlagsContract = Field(default_factory=NodeIssueFlagsContract)
    opportunity: OpportunityContract | None = None
    raw: StatedUplineContract = Field(default_factory=StatedUplineContract)
    custom_fields: dict[str, Any] = Field(default_factory=dict)
    children: list[TreeNodeContract] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "version": CONTRACT_VERSION,
            "schema_uri": f"{SCHEMA_URI_BASE}/tree-node",
        }
    }


class ContactSummaryContract(_WireModel):
    id: str
    name: str
    identifier: str | None = None
    stated_upline_identifier: str | None = None
    stated_upline_email: str | None = None


class IssueGroupContract(_WireModel):
    """Total count plus a capped sample of affected contacts."""

    count: int = Field(0, ge=0)
    contacts: list[ContactSummaryContract] = Field(default_factory=list)


class DuplicateIdentifierGroupContract(_WireModel):
    identifier: str
    contacts: list[ContactSummaryContract] = Field(default_factory=list)


class DuplicateIdentifierIssueContract(_WireModel):
    count: int = Field(0, ge=0)
    groups: list[DuplicateIdentifierGroupContract] = Field(default_factory=list)


class IssuesContract(_WireModel):
    missing_identifier: IssueGroupContract = Field(default_factory=IssueGroupContract)
    duplicate_identifier: DuplicateIdentifierIssueContract = Field(
        default_factory=DuplicateIdentifierIssueContract
    )
    upline_not_found: IssueGroupContract = Field(default_factory=IssueGroupContract)
    cycle_breaks: IssueGroupContract = Field(default_factory=IssueGroupContract)


class SnapshotStatsContract(_WireModel):
    branches: int = Field(0, ge=0, description="Number of roots in the forest")
    producers: int = Field(0, ge=0, description="Real records with a license number")
    enhanced: int = Field(0, ge=0, description="Records with a vendor affiliation")


class SnapshotDocument(_WireModel):
    """Complete output of one engine run."""

    generated_at: datetime
    contract: ContractDescriptor = Field(
        default_factory=lambda: ContractDescriptor(
            name="UplineSnapshot",
            schema_uri=f"{SCHEMA_URI_BASE}/upline-snapshot",
        )
    )
    stats: SnapshotStatsContract = Field(default_factory=SnapshotStatsContract)
    issues: IssuesContract = Field(default_factory=IssuesContract)
    hierarchy: list[TreeNodeContract] = Field(default_factory=list)
    custom_field_defs: list[dict[str, Any]] = Field(default_factory=list)
    opportunity_custom_field_defs: list[dict[str, Any]] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "version": CONTRACT_VERSION,
            "schema_uri": f"{SCHEMA_URI_BASE}/upline-snapshot",
        }
    }

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self, *, indent: int | None = 2) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)


def export_snapshot_schema() -> dict[str, Any]:
    """Return the JSON Schema for ``SnapshotDocument``."""

    return SnapshotDocument.model_json_schema(by_alias=True)


__all__ = [
    "CONTRACT_VERSION",
    "ContactSummaryContract",
    "ContractDescriptor",
    "DuplicateIdentifierGroupContract",
    "DuplicateIdentifierIssueContract",
    "IssueGroupContract",
    "IssuesContract",
    "NodeIssueFlagsContract",
    "NodeMetricsContract",
    "NodeStatus",
    "NodeType",
    "OpportunityContract",
    "SnapshotDocument",
    "SnapshotStatsContract",
    "StatedUplineContract",
    "TreeNodeContract",
    "export_snapshot_schema",
]
