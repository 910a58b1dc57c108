"""Identity indexes keyed by normalised identifiers."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal

from uplinegraph.core.normalization import normalize_email, normalize_text
from uplinegraph.domain.models import Node

IndexKind = Literal["license", "producer", "email"]
CandidateFilter = Callable[[str], bool]

__all__ = [
    "CandidateFilter",
    "IdentityIndex",
    "IndexKind",
    "MatchResult",
    "build_identity_index",
    "completeness_score",
    "is_likely_test_contact",
    "sort_bucket",
]


def completeness_score(node: Node | None) -> int:
    """Rank a node by how complete its record is; real records always win."""

    if node is None:
        return -1_000_000
    score = 0
    if not node.is_synthetic:
        score += 10_000
    if node.email:
        score += 200
    if node.email_display:
        score += 50
    if node.phone:
        score += 50
    if node.company_name:
        score += 25
    if node.raw_upline_identifier:
        score += 400
    if node.raw_upline_email:
        score += 100
    if node.raw_upline_name:
        score += 25
    if node.status_flags.licensed:
        score += 15
    if node.status_flags.training_started:
        score += 5
    if node.status_flags.training_paid:
        score += 5
    return score


def is_likely_test_contact(node: Node | None) -> bool:
    """Heuristic for throwaway records entered while testing the CRM."""

    if node is None or node.is_synthetic:
        return False
    email = normalize_email(node.email or node.email_display or "")
    return (
        "test" in normalize_text(node.display_name)
        or "test" in normalize_text(node.first_name)
        or "test" in normalize_text(node.last_name)
        or normalize_text(node.licensing_state) == "test"
        or normalize_text(node.source) == "test"
        or "test" in email
        or email.endswith("@example.com")
    )


def sort_bucket(ids: Sequence[str], nodes_by_id: Mapping[str, Node]) -> tuple[str, ...]:
    """Order a bucket by completeness, then display name, then id."""

    def _key(node_id: str) -> tuple[int, str, str, str]:
        node = nodes_by_id.get(node_id)
        name = node.display_name if node is not None else ""
        return (-completeness_score(node), name.casefold(), name, node_id)

    return tuple(sorted(ids, key=_key))


@dataclass(frozen=True)
class MatchResult:
    candidate: str | None = None
    ambiguous: bool = False
    candidates: tuple[str, ...] = ()

    @property
    def found(self) -> bool:
        return self.candidate is not None


def _freeze(buckets: Mapping[str, Sequence[str]]) -> Mapping[str, tuple[str, ...]]:
    return MappingProxyType({key: tuple(ids) for key, ids in buckets.items()})


@dataclass(frozen=True)
class IdentityIndex:
    """Read-only lookup maps from identifier value to node ids."""

    license_numbers: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    producer_numbers: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    emails: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def bucket(self, kind: IndexKind, key: str) -> tuple[str, ...]:
        if not key:
            return ()
        if kind == "license":
            return self.license_numbers.get(key, ())
        if kind == "producer":
            return self.producer_numbers.get(key, ())
        return self.emails.get(key, ())

    def contains(self, kind: IndexKind, key: str) -> bool:
        return bool(self.bucket(kind, key))

    def lookup(
        self,
        kind: IndexKind,
        key: str,
        *,
        exclude: str | None = None,
        candidate_filter: CandidateFilter | None = None,
    ) -> MatchResult:
        """Find the node a stated identifier points to.

        Exactly one remaining candidate is a match; several are reported as
        ambiguous without picking one.
        """

        candidates = tuple(
            node_id
            for node_id in self.bucket(kind, key)
            if node_id != exclude
            and (candidate_filter is None or candidate_filter(node_id))
        )
        if len(candidates) == 1:
            return MatchResult(candidate=candidates[0], candidates=candidates)
        if len(candidates) > 1:
            return MatchResult(ambiguous=True, candidates=candidates)
        return MatchResult()

    def with_license_entries(
        self, entries: Iterable[tuple[str, str]]
    ) -> IdentityIndex:
        """Return a copy with extra ``(identifier, node_id)`` license entries."""

        buckets = {key: list(ids) for key, ids in self.license_numbers.items()}
        for key, node_id in entries:
            buckets.setdefault(key, []).append(node_id)
        return IdentityIndex(
            license_numbers=_freeze(buckets),
            producer_numbers=self.producer_numbers,
            emails=self.emails,
        )


def build_identity_index(nodes: Iterable[Node]) -> IdentityIndex:
    """Scan nodes once and bucket them under every identifier they carry."""

    nodes_by_id: dict[str, Node] = {}
    license_numbers: dict[str, list[str]] = {}
    producer_numbers: dict[str, list[str]] = {}
    emails: dict[str, list[str]] = {}
    for node in nodes:
        nodes_by_id[node.id] = node
        if node.license_number:
            license_numbers.setdefault(node.license_number, []).append(node.id)
        if node.producer_number:
            producer_numbers.setdefault(node.producer_number, []).append(node.id)
        if node.email:
            emails.setdefault(node.email, []).append(node.id)

    def _sorted(buckets: dict[str, list[str]]) -> Mapping[str, tuple[str, ...]]:
        return _freeze(
            {
                key: sort_bucket(ids, nodes_by_id) if len(ids) > 1 else ids
                for key, ids in buckets.items()
            }
        )

    return IdentityIndex(
        license_numbers=_sorted(license_numbers),
        producer_numbers=_sorted(producer_numbers),
        emails=_sorted(emails),
    )
