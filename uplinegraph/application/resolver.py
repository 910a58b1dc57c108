"""Cascading, confidence-scored upline resolution.

Each node walks a fixed ladder of evidence (license number, producer number,
e-mail, configured fallback root) and stops at the first parent it can take
without closing a cycle. Ambiguous identifiers resolve to the shared
duplicate-group placeholder rather than an arbitrary record.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from uplinegraph.application.indexing import (
    CandidateFilter,
    IdentityIndex,
    IndexKind,
    is_likely_test_contact,
)
from uplinegraph.application.synthetic import DuplicateGroup, MaterializedSet
from uplinegraph.core.config import EngineSettings
from uplinegraph.core.normalization import normalize_digits, normalize_email
from uplinegraph.domain.models import (
    CONFIDENCE_CONFIGURED_ROOT,
    CONFIDENCE_DUPLICATE_GROUP,
    CONFIDENCE_EMAIL,
    CONFIDENCE_FALLBACK_ROOT,
    CONFIDENCE_LICENSE_NUMBER,
    CONFIDENCE_PRODUCER_NUMBER,
    CONFIDENCE_SYNTHETIC,
    Node,
    UplineSource,
)

logger = logging.getLogger(__name__)


class _Verdict(Enum):
    OK = "ok"
    CYCLE = "cycle"
    CUTOFF = "cutoff"


_IDENTIFIER_RUNGS: tuple[tuple[IndexKind, UplineSource, float], ...] = (
    ("license", UplineSource.LICENSE_NUMBER, CONFIDENCE_LICENSE_NUMBER),
    ("producer", UplineSource.PRODUCER_NUMBER, CONFIDENCE_PRODUCER_NUMBER),
)


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of a resolver pass; node parents are updated in place."""

    fallback_root_id: str | None
    upline_not_found: tuple[str, ...]
    cycle_breaks: tuple[str, ...]
    cutoffs: tuple[str, ...] = ()


def select_fallback_root(
    nodes_by_id: Mapping[str, Node],
    index: IdentityIndex,
    settings: EngineSettings,
) -> str | None:
    """Pick the node that catches otherwise unplaced records.

    Preference: configured contact id, then the configured root e-mail, then
    holders of the organisation root identifier (real, non-test records first).
    """

    contact_id = (settings.fallback_root_contact_id or "").strip()
    if contact_id:
        candidate = nodes_by_id.get(contact_id)
        if candidate is not None and not candidate.is_synthetic:
            return contact_id
        logger.warning("Configured root contact %s is not in this batch", contact_id)

    root_email = normalize_email(settings.fallback_root_email or "")
    if root_email:
        for node_id in index.bucket("email", root_email):
            candidate = nodes_by_id.get(node_id)
            if candidate is not None and not candidate.is_synthetic:
                return node_id

    root_identifier = normalize_digits(settings.organization_root_identifier)
    candidates = index.bucket("license", root_identifier)
    if not candidates:
        return None
    real = [
        node_id
        for node_id in candidates
        if node_id in nodes_by_id and not nodes_by_id[node_id].is_synthetic
    ]
    non_test = [
        node_id for node_id in real if not is_likely_test_contact(nodes_by_id[node_id])
    ]
    return (non_test or real or list(candidates))[0]


class UplineResolver:
    """Assigns every node in a materialised set a parent, at most once."""

    def __init__(self, settings: EngineSettings | None = None) -> None:
        self.settings = settings or EngineSettings()
        self.root_identifier = normalize_digits(
            self.settings.organization_root_identifier
        )

    def resolve(self, materialized: MaterializedSet) -> ResolutionResult:
        run = _ResolutionRun(self, materialized)
        return run.execute()


class _ResolutionRun:
    def __init__(self, resolver: UplineResolver, materialized: MaterializedSet) -> None:
        self.settings = resolver.settings
        self.root_identifier = resolver.root_identifier
        self.materialized = materialized
        self.index = materialized.index
        self.nodes = materialized.nodes
        self.nodes_by_id = materialized.nodes_by_id
        self.walk_limit = len(self.nodes) + 1
        self.root_id = select_fallback_root(self.nodes_by_id, self.index, self.settings)
        self.upline_not_found: dict[str, None] = {}
        self.cycle_breaks: dict[str, None] = {}
        self.cutoffs: dict[str, None] = {}
        self.candidate_filter: CandidateFilter | None = None
        if self.settings.exclude_low_quality_candidates:
            self.candidate_filter = self._is_acceptable_candidate

    def execute(self) -> ResolutionResult:
        for node in self.nodes:
            self._resolve_node(node)
        self._refine_duplicate_groups()
        self._attach_to_fallback_root()

        logger.info(
            "Resolved %d nodes (fallback root: %s, not found: %d, cycle breaks: %d)",
            len(self.nodes),
            self.root_id or "none",
            len(self.upline_not_found),
            len(self.cycle_breaks),
        )
        return ResolutionResult(
            fallback_root_id=self.root_id,
            upline_not_found=tuple(self.upline_not_found),
            cycle_breaks=tuple(self.cycle_breaks),
            cutoffs=tuple(self.cutoffs),
        )

    # Ladder ---------------------------------------------------------------

    def _resolve_node(self, node: Node) -> None:
        assigned = False
        if node.stated_upline_identifier:
            for kind, source, confidence in _IDENTIFIER_RUNGS:
                if self._resolve_by_identifier(node, kind, source, confidence):
                    assigned = True
                    break

        if (
            not assigned
            and not node.stated_upline_identifier
            and node.stated_upline_email
        ):
            match = self.index.lookup(
                "email",
                node.stated_upline_email,
                exclude=node.id,
                candidate_filter=self.candidate_filter,
            )
            if match.candidate is not None:
                assigned = self._try_assign(
                    node,
                    match.candidate,
                    UplineSource.EMAIL,
                    CONFIDENCE_EMAIL,
                    record_cycle=True,
                )

        if (
            not assigned
            and node.stated_upline_identifier
            and self.root_id is not None
            and node.id != self.root_id
        ):
            assigned = self._try_assign(
                node, self.root_id, UplineSource.FALLBACK_ROOT, CONFIDENCE_FALLBACK_ROOT
            )

        if not assigned and node.states_upline:
            self.upline_not_found[node.id] = None

    def _resolve_by_identifier(
        self,
        node: Node,
        kind: IndexKind,
        source: UplineSource,
        confidence: float,
    ) -> bool:
        identifier = node.stated_upline_identifier
        match = self.index.lookup(
            kind, identifier, exclude=node.id, candidate_filter=self.candidate_filter
        )
        if match.candidate is not None:
            return self._try_assign(
                node, match.candidate, source, confidence, record_cycle=True
            )
        if not match.ambiguous:
            return False

        if self.root_id is not None and identifier == self.root_identifier:
            if node.id == self.root_id:
                # The root's own duplicates never become its parent.
                return False
            if self._try_assign(
                node,
                self.root_id,
                UplineSource.LICENSE_NUMBER,
                CONFIDENCE_CONFIGURED_ROOT,
            ):
                return True

        group = self.materialized.group_for(kind, identifier)
        if group is None:
            return False
        return self._try_assign(
            node, group.node_id, UplineSource.SYNTHETIC, CONFIDENCE_DUPLICATE_GROUP
        )

    # Post-passes ----------------------------------------------------------

    def _refine_duplicate_groups(self) -> None:
        rehomed: set[str] = set()
        for group in self.materialized.groups.values():
            members = [
                member_id for member_id in group.member_ids if member_id not in rehomed
            ]
            if len(members) <= 1:
                continue
            rehomed.update(self._refine_group(group, members))

    def _refine_group(self, group: DuplicateGroup, members: list[str]) -> list[str]:
        group_node = self.nodes_by_id[group.node_id]

        if self.root_id is not None and self.root_id in members:
            self._place(
                group_node, self.root_id, UplineSource.SYNTHETIC, CONFIDENCE_SYNTHETIC
            )
            moved: list[str] = []
            for member_id in members:
                if member_id == self.root_id:
                    continue
                member = self.nodes_by_id[member_id]
                if member.parent_id in (None, self.root_id) and self._place(
                    member, group.node_id
                ):
                    moved.append(member_id)
            return moved

        parents = {
            self.nodes_by_id[member_id].parent_id for member_id in members
        } - {None, group.node_id}
        if len(parents) > 1:
            logger.info(
                "Duplicate %s identifier %s has members with different uplines",
                group.kind,
                group.identifier,
            )
            return []

        shared_parent = next(iter(parents), None)
        if shared_parent is not None:
            self._place(
                group_node, shared_parent, UplineSource.SYNTHETIC, CONFIDENCE_SYNTHETIC
            )
        return [
            member_id
            for member_id in members
            if self._place(self.nodes_by_id[member_id], group.node_id)
        ]

    def _attach_to_fallback_root(self) -> None:
        if self.root_id is None:
            return
        for node in self.nodes:
            if node.parent_id is not None or node.id == self.root_id:
                continue
            if node.is_synthetic:
                self._try_assign(
                    node, self.root_id, UplineSource.SYNTHETIC, CONFIDENCE_SYNTHETIC
                )
            else:
                self._try_assign(
                    node,
                    self.root_id,
                    UplineSource.FALLBACK_ROOT,
                    max(node.upline_confidence, CONFIDENCE_FALLBACK_ROOT),
                )

    # Assignment primitives -----------------------------------------------

    def _is_acceptable_candidate(self, node_id: str) -> bool:
        return not is_likely_test_contact(self.nodes_by_id.get(node_id))

    def _check(self, child_id: str, parent_id: str) -> _Verdict:
        """Walk the candidate parent's ancestors looking for ``child_id``."""

        current: str | None = parent_id
        steps = 0
        while current is not None:
            if current == child_id:
                return _Verdict.CYCLE
            steps += 1
            if steps > self.walk_limit:
                return _Verdict.CUTOFF
            ancestor = self.nodes_by_id.get(current)
            current = ancestor.parent_id if ancestor is not None else None
        return _Verdict.OK

    def _try_assign(
        self,
        node: Node,
        parent_id: str,
        source: UplineSource,
        confidence: float,
        *,
        record_cycle: bool = False,
    ) -> bool:
        verdict = self._check(node.id, parent_id)
        if verdict is _Verdict.CYCLE:
            if record_cycle:
                self.cycle_breaks[node.id] = None
            return False
        if verdict is _Verdict.CUTOFF:
            logger.warning(
                "Ancestor walk from %s exceeded %d steps; leaving %s unresolved",
                parent_id,
                self.walk_limit,
                node.id,
            )
            self.cutoffs[node.id] = None
            return False
        node.parent_id = parent_id
        node.upline_source = source
        node.upline_confidence = confidence
        return True

    def _place(
        self,
        node: Node,
        parent_id: str,
        source: UplineSource | None = None,
        confidence: float | None = None,
    ) -> bool:
        """Re-home a node structurally, keeping its evidence unless given."""

        if node.parent_id == parent_id:
            return True
        if self._check(node.id, parent_id) is not _Verdict.OK:
            return False
        node.parent_id = parent_id
        if source is not None and confidence is not None:
            node.upline_source = source
            node.upline_confidence = confidence
        return True


def resolve_uplines(
    materialized: MaterializedSet, settings: EngineSettings | None = None
) -> ResolutionResult:
    """Functional entry point around ``UplineResolver``."""

    return UplineResolver(settings).resolve(materialized)


__all__ = [
    "ResolutionResult",
    "UplineResolver",
    "resolve_uplines",
    "select_fallback_root",
]
