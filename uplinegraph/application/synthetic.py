"""Placeholder nodes for unresolvable uplines and duplicated identifiers.

Every placeholder is created here, before resolution starts, so the resolver
only ever reads a closed node set and a finished index.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from uplinegraph.application.indexing import IdentityIndex, IndexKind
from uplinegraph.core.config import (
    LICENSE_GROUP_PREFIX,
    PRODUCER_GROUP_PREFIX,
    SYNTHETIC_UPLINE_PREFIX,
)
from uplinegraph.domain.models import DUPLICATE_GROUP, UPLINE_PLACEHOLDER, Node

logger = logging.getLogger(__name__)

_GROUP_LABELS: Mapping[str, tuple[str, str]] = {
    "license": (LICENSE_GROUP_PREFIX, "License"),
    "producer": (PRODUCER_GROUP_PREFIX, "Producer"),
}


def build_upline_placeholder(identifier: str) -> Node:
    label = f"Upline {identifier}"
    return Node(
        id=f"{SYNTHETIC_UPLINE_PREFIX}{identifier}",
        display_name=label,
        is_synthetic=True,
        synthetic_kind=UPLINE_PLACEHOLDER,
        first_name="Upline",
        last_name=identifier,
        license_number=identifier,
        raw_license_number=identifier,
        stated_upline_display_name=label,
    )


def build_duplicate_group(kind: IndexKind, identifier: str, count: int) -> Node:
    prefix, noun = _GROUP_LABELS[kind]
    plural = "" if count == 1 else "s"
    node = Node(
        id=f"{prefix}{identifier}",
        display_name=f"{noun} {identifier} ({count} record{plural})",
        is_synthetic=True,
        synthetic_kind=DUPLICATE_GROUP,
        first_name=noun,
        last_name=identifier,
        source="synthetic",
    )
    if kind == "license":
        node.license_number = identifier
        node.raw_license_number = identifier
    else:
        node.producer_number = identifier
        node.raw_producer_number = identifier
    return node


@dataclass(frozen=True)
class DuplicateGroup:
    """Synthetic parent shared by records that carry the same identifier."""

    kind: IndexKind
    identifier: str
    node_id: str
    member_ids: tuple[str, ...]


@dataclass(frozen=True)
class MaterializedSet:
    """Closed working set handed to the resolver."""

    nodes: tuple[Node, ...]
    index: IdentityIndex
    groups: Mapping[tuple[IndexKind, str], DuplicateGroup] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def nodes_by_id(self) -> dict[str, Node]:
        return {node.id: node for node in self.nodes}

    def group_for(self, kind: IndexKind, identifier: str) -> DuplicateGroup | None:
        return self.groups.get((kind, identifier))


def _real_members(
    ids: Sequence[str], nodes_by_id: Mapping[str, Node]
) -> tuple[str, ...]:
    return tuple(
        node_id
        for node_id in ids
        if node_id in nodes_by_id and not nodes_by_id[node_id].is_synthetic
    )


def _free_id(base: str, nodes_by_id: Mapping[str, Node]) -> str:
    suffix = 2
    while f"{base}#{suffix}" in nodes_by_id:
        suffix += 1
    return f"{base}#{suffix}"


def materialize_synthetic_nodes(
    nodes: Sequence[Node], index: IdentityIndex
) -> MaterializedSet:
    """Create upline placeholders and duplicate-group nodes for a node batch."""

    working: list[Node] = list(nodes)
    nodes_by_id: dict[str, Node] = {node.id: node for node in working}

    placeholders: list[Node] = []
    registrations: list[tuple[str, str]] = []
    placed: set[str] = set()
    for node in nodes:
        identifier = node.stated_upline_identifier
        if not identifier or identifier in placed:
            continue
        if index.contains("license", identifier) or index.contains(
            "producer", identifier
        ):
            continue
        placed.add(identifier)
        placeholder = build_upline_placeholder(identifier)
        if placeholder.id in nodes_by_id:
            taken = placeholder.id
            placeholder.id = _free_id(taken, nodes_by_id)
            logger.warning(
                "Upline placeholder id %s collides with an existing record; using %s",
                taken,
                placeholder.id,
            )
        placeholders.append(placeholder)
        nodes_by_id[placeholder.id] = placeholder
        registrations.append((identifier, placeholder.id))
    working.extend(placeholders)
    extended = index.with_license_entries(registrations)

    groups: dict[tuple[IndexKind, str], DuplicateGroup] = {}
    group_nodes: list[Node] = []
    buckets: tuple[tuple[IndexKind, Mapping[str, tuple[str, ...]]], ...] = (
        ("license", extended.license_numbers),
        ("producer", extended.producer_numbers),
    )
    for kind, bucket_map in buckets:
        for identifier, ids in bucket_map.items():
            members = _real_members(ids, nodes_by_id)
            if len(members) <= 1:
                continue
            group_node = build_duplicate_group(kind, identifier, len(members))
            if group_node.id in nodes_by_id:
                logger.warning(
                    "Duplicate-group id %s collides with an existing record",
                    group_node.id,
                )
                continue
            nodes_by_id[group_node.id] = group_node
            group_nodes.append(group_node)
            groups[(kind, identifier)] = DuplicateGroup(
                kind=kind,
                identifier=identifier,
                node_id=group_node.id,
                member_ids=members,
            )
    working.extend(group_nodes)

    logger.info(
        "Materialised %d upline placeholders and %d duplicate groups",
        len(placeholders),
        len(group_nodes),
    )
    return MaterializedSet(
        nodes=tuple(working), index=extended, groups=MappingProxyType(groups)
    )


__all__ = [
    "DuplicateGroup",
    "MaterializedSet",
    "build_duplicate_group",
    "build_upline_placeholder",
    "materialize_synthetic_nodes",
]
