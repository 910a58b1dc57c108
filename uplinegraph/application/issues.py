"""Data-quality findings surfaced alongside the hierarchy."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from uplinegraph.application.indexing import IdentityIndex
from uplinegraph.application.resolver import ResolutionResult
from uplinegraph.core.config import DEFAULT_MAX_ISSUE_SAMPLE
from uplinegraph.domain.contracts import (
    ContactSummaryContract,
    DuplicateIdentifierGroupContract,
    DuplicateIdentifierIssueContract,
    IssueGroupContract,
    IssuesContract,
    NodeIssueFlagsContract,
)
from uplinegraph.domain.models import ContactSummary, Node


@dataclass(frozen=True)
class IssueSets:
    """Per-category node ids, in the order they were detected."""

    missing_identifier: tuple[str, ...]
    duplicate_groups: tuple[tuple[str, tuple[str, ...]], ...]
    upline_not_found: tuple[str, ...]
    cycle_breaks: tuple[str, ...]
    _missing: frozenset[str] = field(init=False, repr=False, compare=False)
    _duplicates: frozenset[str] = field(init=False, repr=False, compare=False)
    _not_found: frozenset[str] = field(init=False, repr=False, compare=False)
    _cycles: frozenset[str] = field(init=False, repr=False, compare=False)

    @property
    def duplicate_members(self) -> frozenset[str]:
        return frozenset(
            member_id for _, members in self.duplicate_groups for member_id in members
        )

    def flags_for(self, node_id: str) -> NodeIssueFlagsContract:
        return NodeIssueFlagsContract(
            missing_identifier=node_id in self._missing,
            duplicate_identifier=node_id in self._duplicates,
            upline_not_found=node_id in self._not_found,
            cycle_break=node_id in self._cycles,
        )

    def __post_init__(self) -> None:
        object.__setattr__(self, "_missing", frozenset(self.missing_identifier))
        object.__setattr__(self, "_duplicates", self.duplicate_members)
        object.__setattr__(self, "_not_found", frozenset(self.upline_not_found))
        object.__setattr__(self, "_cycles", frozenset(self.cycle_breaks))


def collect_issue_sets(
    nodes: Sequence[Node], index: IdentityIndex, resolution: ResolutionResult
) -> IssueSets:
    """Gather the four issue categories from a resolved working set."""

    nodes_by_id = {node.id: node for node in nodes}
    missing = tuple(
        node.id for node in nodes if not node.is_synthetic and not node.license_number
    )
    duplicates = tuple(
        (identifier, tuple(ids))
        for identifier, ids in index.license_numbers.items()
        if len([node_id for node_id in ids if node_id in nodes_by_id]) > 1
    )
    return IssueSets(
        missing_identifier=missing,
        duplicate_groups=duplicates,
        upline_not_found=resolution.upline_not_found,
        cycle_breaks=resolution.cycle_breaks,
    )


def _summaries(
    ids: Iterable[str], nodes_by_id: Mapping[str, Node]
) -> list[ContactSummaryContract]:
    summaries: list[ContactSummaryContract] = []
    for node_id in ids:
        node = nodes_by_id.get(node_id)
        if node is None:
            continue
        summary = ContactSummary.from_node(node)
        summaries.append(
            ContactSummaryContract(
                id=summary.id,
                name=summary.name,
                identifier=summary.identifier,
                stated_upline_identifier=summary.stated_upline_identifier,
                stated_upline_email=summary.stated_upline_email,
            )
        )
    return summaries


class IssueReporter:
    """Caps each category to a fixed sample so large batches stay readable."""

    def __init__(self, *, max_sample_size: int = DEFAULT_MAX_ISSUE_SAMPLE) -> None:
        self.max_sample_size = max(0, max_sample_size)

    def _group(
        self, ids: Sequence[str], nodes_by_id: Mapping[str, Node]
    ) -> IssueGroupContract:
        return IssueGroupContract(
            count=len(ids),
            contacts=_summaries(ids[: self.max_sample_size], nodes_by_id),
        )

    def build(self, issue_sets: IssueSets, nodes: Sequence[Node]) -> IssuesContract:
        nodes_by_id = {node.id: node for node in nodes}
        duplicate_groups = [
            DuplicateIdentifierGroupContract(
                identifier=identifier,
                # Group membership is never truncated, only the group count.
                contacts=_summaries(members, nodes_by_id),
            )
            for identifier, members in issue_sets.duplicate_groups[
                : self.max_sample_size
            ]
        ]
        return IssuesContract(
            missing_identifier=self._group(issue_sets.missing_identifier, nodes_by_id),
            duplicate_identifier=DuplicateIdentifierIssueContract(
                count=len(issue_sets.duplicate_groups),
                groups=duplicate_groups,
            ),
            upline_not_found=self._group(issue_sets.upline_not_found, nodes_by_id),
            cycle_breaks=self._group(issue_sets.cycle_breaks, nodes_by_id),
        )


__all__ = ["IssueReporter", "IssueSets", "collect_issue_sets"]
