from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

SyntheticKind = Literal["upline-placeholder", "duplicate-group"]

UPLINE_PLACEHOLDER: SyntheticKind = "upline-placeholder"
DUPLICATE_GROUP: SyntheticKind = "duplicate-group"


class UplineSource(str, Enum):
    """Evidence used to resolve a node's parent."""

    LICENSE_NUMBER = "license-number"
    PRODUCER_NUMBER = "producer-number"
    EMAIL = "email"
    FALLBACK_ROOT = "fallback-root"
    SYNTHETIC = "synthetic"
    UNKNOWN = "unknown"


# Confidence ladder; the configured-root special case sits just under a direct
# license match.
CONFIDENCE_LICENSE_NUMBER = 0.95
CONFIDENCE_CONFIGURED_ROOT = 0.90
CONFIDENCE_PRODUCER_NUMBER = 0.85
CONFIDENCE_DUPLICATE_GROUP = 0.80
CONFIDENCE_EMAIL = 0.60
CONFIDENCE_FALLBACK_ROOT = 0.40
CONFIDENCE_SYNTHETIC = 1.0
CONFIDENCE_UNKNOWN = 0.0


@dataclass(frozen=True)
class RawRecord:
    """Contact record as delivered by the CRM, after custom-field key lookup."""

    id: str
    first_name: str | None = None
    last_name: str | None = None
    contact_name: str | None = None
    email: str | None = None
    company_name: str | None = None
    phone: str | None = None
    source: str | None = None
    custom_fields: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        field_keys: Mapping[str, str] | None = None,
    ) -> RawRecord:
        """Build a record from a CRM contact payload.

        ``customFields`` entries are ``{"id": ..., "value": ...}`` pairs; ids are
        translated through ``field_keys`` and kept verbatim when unknown. A
        mapping of already-resolved keys is accepted as-is.
        """

        lookup = field_keys or {}
        raw_custom = payload.get("customFields") or payload.get("custom_fields") or []
        custom: dict[str, Any] = {}
        if isinstance(raw_custom, Mapping):
            custom.update(raw_custom)
        elif isinstance(raw_custom, list):
            for entry in raw_custom:
                if not isinstance(entry, Mapping) or entry.get("id") is None:
                    continue
                entry_id = str(entry["id"])
                custom[lookup.get(entry_id, entry_id)] = entry.get("value")

        def _text(*keys: str) -> str | None:
            for key in keys:
                value = payload.get(key)
                if isinstance(value, str) and value:
                    return value
            return None

        return cls(
            id=str(payload.get("id") or ""),
            first_name=_text("firstNameRaw", "firstName", "first_name"),
            last_name=_text("lastNameRaw", "lastName", "last_name"),
            contact_name=_text("contactName", "contact_name", "name"),
            email=_text("email"),
            company_name=_text("companyName", "company_name"),
            phone=_text("phone"),
            source=_text("source"),
            custom_fields=custom,
        )


@dataclass(frozen=True)
class StatusFlags:
    licensed: bool = False
    training_account_created: bool = False
    training_started: bool = False
    training_paid: bool = False

    def as_dict(self) -> dict[str, bool]:
        return {
            "licensed": self.licensed,
            "trainingAccountCreated": self.training_account_created,
            "trainingStarted": self.training_started,
            "trainingPaid": self.training_paid,
        }


@dataclass(frozen=True)
class OpportunitySummary:
    """Latest pipeline opportunity attached to a contact."""

    pipeline_id: str | None = None
    pipeline_stage_id: str | None = None
    monetary_value: Any = None
    assigned_to: str | None = None
    custom_fields: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Node:
    """Working entity the engine resolves into the hierarchy."""

    id: str
    display_name: str
    is_synthetic: bool = False
    synthetic_kind: SyntheticKind | None = None
    license_number: str = ""
    producer_number: str = ""
    email: str = ""
    stated_upline_identifier: str = ""
    stated_upline_email: str = ""
    stated_upline_display_name: str = ""
    raw_upline_identifier: str = ""
    raw_upline_email: str = ""
    raw_upline_name: str = ""
    raw_license_number: str = ""
    raw_producer_number: str = ""
    first_name: str = ""
    last_name: str = ""
    company_name: str | None = None
    email_display: str | None = None
    phone: str | None = None
    source: str | None = None
    status_flags: StatusFlags = field(default_factory=StatusFlags)
    vendors: dict[str, bool] = field(default_factory=dict)
    vendor_profiles: dict[str, bool] = field(default_factory=dict)
    licensing_state: str = ""
    comp_level: str = ""
    comp_level_notes: str = ""
    upline_highest_stage: str | None = None
    opportunity: OpportunitySummary | None = None
    custom_fields: dict[str, Any] = field(default_factory=dict)
    parent_id: str | None = None
    upline_source: UplineSource = UplineSource.UNKNOWN
    upline_confidence: float = CONFIDENCE_UNKNOWN
    child_ids: list[str] = field(default_factory=list)

    @property
    def has_vendor_affiliation(self) -> bool:
        return any(self.vendors.values())

    @property
    def states_upline(self) -> bool:
        """True when the record carries any upline reference at all."""

        return bool(self.raw_upline_identifier or self.raw_upline_email)


@dataclass(frozen=True)
class ContactSummary:
    """Compact description of a node used in issue samples."""

    id: str
    name: str
    identifier: str | None
    stated_upline_identifier: str | None
    stated_upline_email: str | None

    @classmethod
    def from_node(cls, node: Node) -> ContactSummary:
        return cls(
            id=node.id,
            name=node.display_name,
            identifier=node.license_number or None,
            stated_upline_identifier=node.raw_upline_identifier or None,
            stated_upline_email=node.stated_upline_email or None,
        )


__all__ = [
    "CONFIDENCE_CONFIGURED_ROOT",
    "CONFIDENCE_DUPLICATE_GROUP",
    "CONFIDENCE_EMAIL",
    "CONFIDENCE_FALLBACK_ROOT",
    "CONFIDENCE_LICENSE_NUMBER",
    "CONFIDENCE_PRODUCER_NUMBER",
    "CONFIDENCE_SYNTHETIC",
    "CONFIDENCE_UNKNOWN",
    "DUPLICATE_GROUP",
    "ContactSummary",
    "Node",
    "OpportunitySummary",
    "RawRecord",
    "StatusFlags",
    "SyntheticKind",
    "UPLINE_PLACEHOLDER",
    "UplineSource",
]
