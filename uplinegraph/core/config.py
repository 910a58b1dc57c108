"""Central configuration for the upline hierarchy engine."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent.parent
PROJECT_ROOT = PACKAGE_ROOT.parent

_env_path = PROJECT_ROOT / ".env"
if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()


# Base paths ----------------------------------------------------------------
DATA_DIR = PROJECT_ROOT / "data"
PROCESSED_DIR = DATA_DIR / "processed"
SNAPSHOT_JSON = PROCESSED_DIR / "upline_snapshot.json"
SNAPSHOT_CSV = PROCESSED_DIR / "upline_snapshot.csv"

DEFAULT_MAX_ISSUE_SAMPLE = 25
SYNTHETIC_UPLINE_PREFIX = "upline:"
LICENSE_GROUP_PREFIX = "license-group:"
PRODUCER_GROUP_PREFIX = "producer-group:"
DEFAULT_ONBOARDING_PIPELINE_NAME = "Onboarding - Agent"


@dataclass(frozen=True)
class FieldKeys:
    """Custom attribute keys read from each CRM record."""

    license_number: str = "contact.onboarding__npn"
    producer_number: str = "contact.onboarding__producer_number"
    upline_identifier: str = "contact.upline_producer_id"
    upline_identifier_fallback: str = "contact.onboarding__upline_npn"
    upline_email: str = "contact.onboarding__upline_email"
    upline_name: str = "contact.upline_name"
    upline_highest_stage: str = "contact.upline_highest_stage"
    licensed: str = "contact.onboarding__licensed"
    training_account_created: str = "contact.onboarding__xcel_account_created"
    training_started: str = "contact.onboarding__xcel_started"
    training_paid: str = "contact.onboarding__xcel_paid"
    licensing_state: str = "contact.onboarding__licensing_state"
    comp_level: str = "contact.onboarding__comp_level_mrfg"
    comp_level_notes: str = "contact.custom_comp_level_notes"
    vendors: Mapping[str, str] = field(
        default_factory=lambda: {
            "Equita": "contact.upline_code_equita",
            "Quility": "contact.upline_code_quility",
        }
    )
    vendor_profiles: Mapping[str, str] = field(
        default_factory=lambda: {
            "Equita": "contact.onboarding__equita_profile_created",
            "Quility": "contact.onboarding__quility_profile_created",
        }
    )


@dataclass(frozen=True)
class EngineSettings:
    """Options recognised by the resolution engine.

    The engine receives these explicitly; it never consults the process
    environment itself. ``load_settings`` bridges the two for callers.
    """

    organization_root_identifier: str = ""
    fallback_root_contact_id: str | None = None
    fallback_root_email: str | None = None
    exclude_low_quality_candidates: bool = False
    max_issue_sample_size: int = DEFAULT_MAX_ISSUE_SAMPLE
    onboarding_pipeline_id: str | None = None
    onboarding_pipeline_name: str = DEFAULT_ONBOARDING_PIPELINE_NAME
    field_keys: FieldKeys = field(default_factory=FieldKeys)


def _get_value(name: str, environ: Mapping[str, str]) -> str | None:
    value = environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _env_bool(name: str, default: bool, environ: Mapping[str, str]) -> bool:
    value = _get_value(name, environ)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "checked"}


def _env_int(name: str, default: int, environ: Mapping[str, str]) -> int:
    value = _get_value(name, environ)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r; using %s", name, value, default)
        return default
    if parsed < 0:
        logger.warning("Ignoring negative %s=%r; using %s", name, value, default)
        return default
    return parsed


def load_settings(environ: Mapping[str, str] | None = None) -> EngineSettings:
    """Build ``EngineSettings`` from environment variables."""

    env = os.environ if environ is None else environ
    return EngineSettings(
        organization_root_identifier=_get_value("UPLINE_ROOT_IDENTIFIER", env) or "",
        fallback_root_contact_id=_get_value("UPLINE_ROOT_CONTACT_ID", env),
        fallback_root_email=_get_value("UPLINE_ROOT_CONTACT_EMAIL", env),
        exclude_low_quality_candidates=_env_bool(
            "UPLINE_EXCLUDE_TEST_CANDIDATES", False, env
        ),
        max_issue_sample_size=_env_int(
            "UPLINE_MAX_ISSUE_SAMPLE", DEFAULT_MAX_ISSUE_SAMPLE, env
        ),
        onboarding_pipeline_id=_get_value("UPLINE_ONBOARDING_PIPELINE_ID", env),
        onboarding_pipeline_name=_get_value("UPLINE_ONBOARDING_PIPELINE_NAME", env)
        or DEFAULT_ONBOARDING_PIPELINE_NAME,
    )


__all__ = [
    "DEFAULT_MAX_ISSUE_SAMPLE",
    "DEFAULT_ONBOARDING_PIPELINE_NAME",
    "EngineSettings",
    "FieldKeys",
    "LICENSE_GROUP_PREFIX",
    "PRODUCER_GROUP_PREFIX",
    "SNAPSHOT_CSV",
    "SNAPSHOT_JSON",
    "SYNTHETIC_UPLINE_PREFIX",
    "load_settings",
]
