from uplinegraph.application.indexing import (
    build_identity_index,
    completeness_score,
    is_likely_test_contact,
    sort_bucket,
)
from uplinegraph.application.normalizer import normalize_records
from uplinegraph.domain.models import Node, StatusFlags


def test_buckets_group_nodes_by_identifier(make_record) -> None:
    nodes = normalize_records(
        [
            make_record("A", license="111", producer="9", email="a@x.com"),
            make_record("B", license="222"),
            make_record("C", producer="9"),
        ]
    )

    index = build_identity_index(nodes)

    assert index.bucket("license", "111") == ("A",)
    assert index.bucket("email", "a@x.com") == ("A",)
    assert set(index.bucket("producer", "9")) == {"A", "C"}
    assert index.bucket("license", "") == ()
    assert index.contains("license", "222")
    assert not index.contains("license", "999")


def test_lookup_reports_ambiguity_without_choosing(make_record) -> None:
    nodes = normalize_records(
        [
            make_record("D", license="222"),
            make_record("E", license="222"),
            make_record("F", license="333"),
        ]
    )
    index = build_identity_index(nodes)

    ambiguous = index.lookup("license", "222")
    assert ambiguous.ambiguous
    assert ambiguous.candidate is None
    assert set(ambiguous.candidates) == {"D", "E"}

    narrowed = index.lookup("license", "222", exclude="D")
    assert narrowed.found
    assert narrowed.candidate == "E"

    self_only = index.lookup("license", "333", exclude="F")
    assert not self_only.found
    assert not self_only.ambiguous


def test_candidate_filter_can_disambiguate(make_record) -> None:
    nodes = normalize_records(
        [
            make_record("T1", first="Test", last="Account", license="600"),
            make_record("T2", first="Real", last="Person", license="600"),
        ]
    )
    nodes_by_id = {node.id: node for node in nodes}
    index = build_identity_index(nodes)

    match = index.lookup(
        "license",
        "600",
        candidate_filter=lambda node_id: not is_likely_test_contact(
            nodes_by_id[node_id]
        ),
    )

    assert match.candidate == "T2"


def test_buckets_are_sorted_by_completeness_then_name() -> None:
    sparse = Node(id="z-sparse", display_name="Aaron")
    rich = Node(
        id="a-rich",
        display_name="Zed",
        email="zed@x.com",
        raw_upline_identifier="5",
        status_flags=StatusFlags(licensed=True),
    )
    twin = Node(id="b-twin", display_name="Aaron")
    synthetic = Node(id="upline:1", display_name="Upline 1", is_synthetic=True)
    nodes_by_id = {node.id: node for node in (sparse, rich, twin, synthetic)}

    ordered = sort_bucket(["upline:1", "z-sparse", "b-twin", "a-rich"], nodes_by_id)

    assert ordered == ("a-rich", "b-twin", "z-sparse", "upline:1")
    assert completeness_score(rich) == 10_000 + 200 + 400 + 15
    assert completeness_score(synthetic) == 0
    assert completeness_score(None) < 0


def test_test_contact_heuristic() -> None:
    assert is_likely_test_contact(Node(id="1", display_name="Testy McTest"))
    assert is_likely_test_contact(
        Node(id="2", display_name="Jo", email="jo@example.com")
    )
    assert is_likely_test_contact(Node(id="3", display_name="Jo", source="TEST"))
    assert not is_likely_test_contact(Node(id="4", display_name="Jo Real"))
    assert not is_likely_test_contact(
        Node(id="5", display_name="Test", is_synthetic=True)
    )


def test_rebuilding_the_index_is_idempotent(make_record) -> None:
    records = [
        make_record("A", license="1", email="a@x.com"),
        make_record("B", license="1", producer="7"),
        make_record("C", producer="7", email="a@x.com"),
    ]
    first = build_identity_index(normalize_records(records))
    second = build_identity_index(normalize_records(records))

    assert dict(first.license_numbers) == dict(second.license_numbers)
    assert dict(first.producer_numbers) == dict(second.producer_numbers)
    assert dict(first.emails) == dict(second.emails)


def test_with_license_entries_returns_a_new_index(make_record) -> None:
    index = build_identity_index(normalize_records([make_record("A", license="1")]))

    extended = index.with_license_entries([("999", "upline:999")])

    assert extended.bucket("license", "999") == ("upline:999",)
    assert not index.contains("license", "999")
    assert extended.bucket("license", "1") == ("A",)
