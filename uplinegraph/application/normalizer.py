"""Record normaliser turning raw CRM contacts into working nodes."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from uplinegraph.core.config import FieldKeys
from uplinegraph.core.normalization import (
    first_value,
    format_display_name,
    is_truthy,
    join_name_parts,
    normalize_digits,
    normalize_email,
    safe_trim,
)
from uplinegraph.domain.models import Node, RawRecord, StatusFlags

logger = logging.getLogger(__name__)


def _raw_text(value: Any) -> str:
    value = first_value(value)
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip()


def _display_name(record: RawRecord) -> str:
    name = join_name_parts([record.first_name, record.last_name])
    if name:
        return format_display_name(name)
    contact_name = safe_trim(record.contact_name)
    if contact_name:
        return format_display_name(contact_name)
    email = safe_trim(record.email)
    if email:
        return email
    return f"Contact {record.id[-6:]}"


def normalize_record(record: RawRecord, field_keys: FieldKeys | None = None) -> Node:
    """Normalise one record. Missing or garbled fields become empty values."""

    keys = field_keys or FieldKeys()
    custom = record.custom_fields

    upline_raw = custom.get(keys.upline_identifier)
    if first_value(upline_raw) in (None, ""):
        upline_raw = custom.get(keys.upline_identifier_fallback)
    upline_email_raw = custom.get(keys.upline_email)
    upline_name_raw = custom.get(keys.upline_name)
    license_raw = custom.get(keys.license_number)
    producer_raw = custom.get(keys.producer_number)

    return Node(
        id=record.id,
        display_name=_display_name(record),
        license_number=normalize_digits(license_raw),
        producer_number=normalize_digits(producer_raw),
        email=normalize_email(record.email),
        stated_upline_identifier=normalize_digits(upline_raw),
        stated_upline_email=normalize_email(upline_email_raw),
        stated_upline_display_name=safe_trim(upline_name_raw),
        raw_upline_identifier=_raw_text(upline_raw),
        raw_upline_email=_raw_text(upline_email_raw),
        raw_upline_name=_raw_text(upline_name_raw),
        raw_license_number=_raw_text(license_raw),
        raw_producer_number=_raw_text(producer_raw),
        first_name=safe_trim(record.first_name),
        last_name=safe_trim(record.last_name),
        company_name=record.company_name or None,
        email_display=record.email or None,
        phone=record.phone or None,
        source=record.source or None,
        status_flags=StatusFlags(
            licensed=is_truthy(custom.get(keys.licensed)),
            training_account_created=is_truthy(
                custom.get(keys.training_account_created)
            ),
            training_started=is_truthy(custom.get(keys.training_started)),
            training_paid=is_truthy(custom.get(keys.training_paid)),
        ),
        vendors={
            label: is_truthy(custom.get(key)) for label, key in keys.vendors.items()
        },
        vendor_profiles={
            label: is_truthy(custom.get(key))
            for label, key in keys.vendor_profiles.items()
        },
        licensing_state=safe_trim(custom.get(keys.licensing_state)),
        comp_level=safe_trim(custom.get(keys.comp_level)),
        comp_level_notes=safe_trim(custom.get(keys.comp_level_notes)),
        upline_highest_stage=safe_trim(custom.get(keys.upline_highest_stage)) or None,
        custom_fields=dict(custom),
    )


def normalize_records(
    records: Iterable[RawRecord],
    field_keys: FieldKeys | None = None,
    *,
    opportunities: Mapping[str, Any] | None = None,
) -> list[Node]:
    """Normalise a batch, attaching the latest opportunity per contact if given."""

    nodes: list[Node] = []
    seen: set[str] = set()
    for record in records:
        node = normalize_record(record, field_keys)
        if not node.id or node.id in seen:
            # Ids must stay unique across the working set.
            logger.warning("Skipping record with missing or repeated id %r", node.id)
            continue
        seen.add(node.id)
        if opportunities:
            node.opportunity = opportunities.get(node.id)
        nodes.append(node)
    return nodes


__all__ = ["normalize_record", "normalize_records"]
