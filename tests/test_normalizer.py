import logging

import pytest

from uplinegraph.application.normalizer import normalize_record, normalize_records
from uplinegraph.core.config import FieldKeys
from uplinegraph.domain.models import (
    OpportunitySummary,
    RawRecord,
    UplineSource,
)

KEYS = FieldKeys()


def test_identifiers_are_digit_normalised_and_raw_values_kept() -> None:
    record = RawRecord(
        id="contact-000001",
        first_name="Jane",
        last_name="Doe",
        email="  Jane@Example.com ",
        custom_fields={
            KEYS.license_number: ["  NPN 987-654 "],
            KEYS.producer_number: 4242,
            KEYS.upline_identifier: "12-34",
            KEYS.upline_email: " Boss@Agency.COM ",
            KEYS.upline_name: " Big Boss ",
        },
    )

    node = normalize_record(record)

    assert node.license_number == "987654"
    assert node.raw_license_number == "NPN 987-654"
    assert node.producer_number == "4242"
    assert node.email == "jane@example.com"
    assert node.email_display == "  Jane@Example.com "
    assert node.stated_upline_identifier == "1234"
    assert node.raw_upline_identifier == "12-34"
    assert node.stated_upline_email == "boss@agency.com"
    assert node.stated_upline_display_name == "Big Boss"
    assert node.parent_id is None
    assert node.child_ids == []
    assert node.upline_source is UplineSource.UNKNOWN
    assert node.upline_confidence == 0.0
    assert node.states_upline


def test_secondary_upline_key_is_used_when_primary_is_blank() -> None:
    record = RawRecord(
        id="c1",
        custom_fields={
            KEYS.upline_identifier: "",
            KEYS.upline_identifier_fallback: "55 66",
        },
    )

    node = normalize_record(record)

    assert node.stated_upline_identifier == "5566"
    assert node.raw_upline_identifier == "55 66"


@pytest.mark.parametrize(
    ("record", "expected"),
    [
        (RawRecord(id="c1", first_name="JANE", last_name="O'NEIL"), "Jane O'Neil"),
        (RawRecord(id="c1", first_name="Jane", last_name="deGroot"), "Jane deGroot"),
        (RawRecord(id="c1", contact_name="mary-anne lee"), "Mary-Anne Lee"),
        (RawRecord(id="c1", email="solo@example.com"), "solo@example.com"),
        (RawRecord(id="abcdef123456"), "Contact 123456"),
    ],
)
def test_display_name_fallbacks(record: RawRecord, expected: str) -> None:
    assert normalize_record(record).display_name == expected


def test_status_and_vendor_flags_are_interpreted() -> None:
    record = RawRecord(
        id="c1",
        custom_fields={
            KEYS.licensed: "Yes",
            KEYS.training_started: ["checked"],
            KEYS.training_paid: 0,
            KEYS.vendors["Equita"]: "true",
            KEYS.vendor_profiles["Quility"]: "on",
            KEYS.licensing_state: " TX ",
            KEYS.comp_level: "80",
        },
    )

    node = normalize_record(record)

    assert node.status_flags.licensed
    assert node.status_flags.training_started
    assert not node.status_flags.training_paid
    assert node.vendors == {"Equita": True, "Quility": False}
    assert node.vendor_profiles == {"Equita": False, "Quility": True}
    assert node.has_vendor_affiliation
    assert node.licensing_state == "TX"
    assert node.comp_level == "80"


def test_garbled_values_never_raise() -> None:
    record = RawRecord(
        id="c1",
        custom_fields={
            KEYS.license_number: {"unexpected": "shape"},
            KEYS.upline_identifier: True,
            KEYS.upline_email: 17,
            KEYS.licensed: object(),
        },
    )

    node = normalize_record(record)

    assert node.license_number == ""
    assert node.stated_upline_identifier == ""
    assert node.stated_upline_email == ""


def test_from_payload_resolves_custom_field_ids() -> None:
    payload = {
        "id": "abc",
        "firstNameRaw": "ALICE",
        "firstName": "Alice",
        "lastName": "Able",
        "email": "alice@example.com",
        "customFields": [
            {"id": "fld-npn", "value": "111"},
            {"id": "fld-unknown", "value": "kept"},
            {"value": "no id"},
        ],
    }

    record = RawRecord.from_payload(payload, {"fld-npn": KEYS.license_number})

    assert record.first_name == "ALICE"
    assert record.custom_fields == {
        KEYS.license_number: "111",
        "fld-unknown": "kept",
    }
    assert normalize_record(record).license_number == "111"


def test_batch_skips_repeated_ids_and_attaches_opportunities(
    caplog: pytest.LogCaptureFixture,
) -> None:
    opportunity = OpportunitySummary(pipeline_id="p1", pipeline_stage_id="s1")
    records = [
        RawRecord(id="a", first_name="First"),
        RawRecord(id="a", first_name="Duplicate"),
        RawRecord(id="", first_name="Nameless"),
        RawRecord(id="b", first_name="Second"),
    ]

    with caplog.at_level(logging.WARNING):
        nodes = normalize_records(records, opportunities={"b": opportunity})

    assert [node.id for node in nodes] == ["a", "b"]
    assert nodes[0].display_name == "First"
    assert nodes[0].opportunity is None
    assert nodes[1].opportunity == opportunity
    assert "repeated id" in caplog.text
