"""Tree assembly and serialisation of the resolved forest."""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass

from uplinegraph.application.issues import IssueSets
from uplinegraph.domain.contracts import (
    NodeIssueFlagsContract,
    NodeMetricsContract,
    NodeStatus,
    NodeType,
    OpportunityContract,
    StatedUplineContract,
    TreeNodeContract,
)
from uplinegraph.domain.models import DUPLICATE_GROUP, Node, OpportunitySummary

logger = logging.getLogger(__name__)

DUPLICATE_TAG = "Duplicate Identifier"
REVIEW_TAG = "Needs Review"
LICENSED_TAG = "Licensed"

# Each level nests two JSON containers; parsers commonly stop near 200.
MAX_RENDER_DEPTH = 64


def derive_status(node: Node) -> NodeStatus:
    flags = node.status_flags
    if flags.licensed:
        return "ACTIVE"
    if flags.training_started or flags.training_paid:
        return "PENDING"
    return "INACTIVE"


def vendor_group(node: Node) -> str:
    """Single affiliated vendor in lower case, ``combined`` otherwise."""

    affiliated = [label for label, enabled in node.vendors.items() if enabled]
    if len(affiliated) == 1:
        return affiliated[0].lower()
    return "combined"


def build_tags(node: Node, issues: NodeIssueFlagsContract) -> list[str]:
    tags: list[str] = []
    if node.is_synthetic and node.synthetic_kind == DUPLICATE_GROUP:
        tags.extend([DUPLICATE_TAG, REVIEW_TAG])
    tags.extend(label for label, enabled in node.vendors.items() if enabled)
    if node.status_flags.licensed:
        tags.append(LICENSED_TAG)
    tags.extend(
        f"{label} Profile" for label, created in node.vendor_profiles.items() if created
    )
    if node.licensing_state:
        tags.append(node.licensing_state)
    if node.comp_level:
        tags.append(f"Comp {node.comp_level}")
    if issues.has_any and REVIEW_TAG not in tags:
        tags.append(REVIEW_TAG)
    return tags


def _node_flags(node: Node) -> dict[str, bool]:
    flags = node.status_flags.as_dict()
    for label, created in node.vendor_profiles.items():
        flags[f"{label[:1].lower()}{label[1:]}Profile"] = created
    return flags


def _opportunity(summary: OpportunitySummary | None) -> OpportunityContract | None:
    if summary is None:
        return None
    return OpportunityContract(
        pipeline_id=summary.pipeline_id,
        pipeline_stage_id=summary.pipeline_stage_id,
        monetary_value=summary.monetary_value,
        assigned_to=summary.assigned_to,
        custom_fields=dict(summary.custom_fields),
    )


@dataclass(frozen=True)
class AssembledForest:
    hierarchy: tuple[TreeNodeContract, ...]
    root_ids: tuple[str, ...]

    @property
    def branches(self) -> int:
        return len(self.hierarchy)


class TreeAssembler:
    """Links resolved parents into child lists and renders the nested tree.

    Nodes whose parent is missing from the working set, and nodes flagged as
    cycle breaks, become roots. Both the linking and the rendering walk are
    iterative and visit each node at most once. A node that would sit deeper
    than ``max_depth`` is detached and rendered as its own branch, tagged for
    review.
    """

    def __init__(
        self,
        issue_sets: IssueSets,
        *,
        fallback_root_id: str | None = None,
        max_depth: int = MAX_RENDER_DEPTH,
    ) -> None:
        self.issue_sets = issue_sets
        self.fallback_root_id = fallback_root_id
        self.max_depth = max(1, max_depth)

    def link(
        self, nodes: Sequence[Node], nodes_by_id: Mapping[str, Node]
    ) -> list[str]:
        """Fill ``child_ids`` and return the root ids in display order."""

        cycle_breaks: Collection[str] = frozenset(self.issue_sets.cycle_breaks)
        linked: set[str] = set()
        roots: list[str] = []
        for node in nodes:
            node.child_ids = []
        for node in nodes:
            parent = nodes_by_id.get(node.parent_id) if node.parent_id else None
            if (
                parent is None
                or parent.id == node.id
                or node.id in cycle_breaks
                or node.id in linked
            ):
                roots.append(node.id)
                continue
            parent.child_ids.append(node.id)
            linked.add(node.id)

        def _root_key(node_id: str) -> tuple[bool, str, str, str]:
            name = nodes_by_id[node_id].display_name
            return (node_id != self.fallback_root_id, name.casefold(), name, node_id)

        return sorted(roots, key=_root_key)

    def render(
        self, root_ids: Sequence[str], nodes_by_id: Mapping[str, Node]
    ) -> list[TreeNodeContract]:
        order: list[tuple[str, int, bool]] = []
        visited: set[str] = set()
        branches: list[str] = list(root_ids)
        detached: set[str] = set()
        position = 0
        while position < len(branches):
            root_id = branches[position]
            position += 1
            stack: list[tuple[str, int]] = [(root_id, 1)]
            while stack:
                node_id, level = stack.pop()
                if node_id in visited or node_id not in nodes_by_id:
                    continue
                if level > self.max_depth:
                    detached.add(node_id)
                    branches.append(node_id)
                    continue
                visited.add(node_id)
                order.append((node_id, level, level == 1))
                children = nodes_by_id[node_id].child_ids
                stack.extend((child_id, level + 1) for child_id in reversed(children))

        if detached:
            logger.warning(
                "Detached %d subtrees deeper than %d levels into their own branches",
                len(detached),
                self.max_depth,
            )
        unreached = len(nodes_by_id) - len(visited)
        if unreached:
            logger.warning("%d nodes were not reachable from any root", unreached)

        built: dict[str, TreeNodeContract] = {}
        for node_id, level, is_root in reversed(order):
            node = nodes_by_id[node_id]
            children = [
                built[cid]
                for cid in node.child_ids
                if cid in built and cid not in detached
            ]
            built[node_id] = self._render_node(
                node, level, is_root, children, detached=node_id in detached
            )
        return [built[root_id] for root_id in branches if root_id in built]

    def _render_node(
        self,
        node: Node,
        level: int,
        is_root: bool,
        children: list[TreeNodeContract],
        *,
        detached: bool = False,
    ) -> TreeNodeContract:
        node_type: NodeType
        if not children:
            node_type = "leaf"
        elif is_root:
            node_type = "root"
        else:
            node_type = "intermediate"

        issues = self.issue_sets.flags_for(node.id)
        tags = build_tags(node, issues)
        if detached and REVIEW_TAG not in tags:
            tags.append(REVIEW_TAG)
        return TreeNodeContract(
            id=node.id,
            label=node.display_name,
            license_number=node.license_number or None,
            producer_number=node.producer_number or None,
            email=node.email_display,
            phone=node.phone,
            source=node.source,
            company_name=node.company_name,
            is_synthetic=node.is_synthetic,
            synthetic_kind=node.synthetic_kind,
            parent_id=None if is_root else node.parent_id,
            level=level,
            node_type=node_type,
            status=derive_status(node),
            vendor_flags=dict(node.vendors),
            vendor_group=vendor_group(node),
            licensing_state=node.licensing_state or None,
            comp_level=node.comp_level or None,
            comp_level_notes=node.comp_level_notes or None,
            tags=tags,
            upline_source=node.upline_source,
            upline_confidence=node.upline_confidence,
            metrics=NodeMetricsContract(
                direct_reports=len(children),
                descendant_count=sum(
                    child.metrics.descendant_count + 1 for child in children
                ),
            ),
            flags=_node_flags(node),
            issues=issues,
            opportunity=_opportunity(node.opportunity),
            raw=StatedUplineContract(
                upline_identifier=node.raw_upline_identifier or None,
                upline_email=node.raw_upline_email or None,
                upline_name=node.raw_upline_name or None,
                upline_highest_stage=node.upline_highest_stage or None,
                license_number=node.raw_license_number or None,
                producer_number=node.raw_producer_number or None,
            ),
            custom_fields=dict(node.custom_fields),
            children=children,
        )

    def assemble(self, nodes: Sequence[Node]) -> AssembledForest:
        nodes_by_id = {node.id: node for node in nodes}
        root_ids = self.link(nodes, nodes_by_id)
        hierarchy = self.render(root_ids, nodes_by_id)
        logger.info("Assembled %d nodes into %d branches", len(nodes), len(hierarchy))
        return AssembledForest(
            hierarchy=tuple(hierarchy), root_ids=tuple(node.id for node in hierarchy)
        )


def assemble_forest(
    nodes: Sequence[Node],
    issue_sets: IssueSets,
    *,
    fallback_root_id: str | None = None,
) -> AssembledForest:
    return TreeAssembler(issue_sets, fallback_root_id=fallback_root_id).assemble(
        nodes
    )


__all__ = [
    "AssembledForest",
    "MAX_RENDER_DEPTH",
    "TreeAssembler",
    "assemble_forest",
    "build_tags",
    "derive_status",
    "vendor_group",
]
