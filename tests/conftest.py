from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from uplinegraph.core.config import EngineSettings, FieldKeys
from uplinegraph.domain.models import RawRecord

KEYS = FieldKeys()
FIXED_TIME = datetime(2024, 1, 1, tzinfo=UTC)

RecordFactory = Callable[..., RawRecord]


def _make_record(
    record_id: str,
    *,
    first: str | None = None,
    last: str | None = None,
    email: str | None = None,
    license: Any = None,
    producer: Any = None,
    upline: Any = None,
    upline_email: Any = None,
    upline_name: Any = None,
    licensed: Any = None,
    **extra: Any,
) -> RawRecord:
    custom: dict[str, Any] = {}
    for key, value in (
        (KEYS.license_number, license),
        (KEYS.producer_number, producer),
        (KEYS.upline_identifier, upline),
        (KEYS.upline_email, upline_email),
        (KEYS.upline_name, upline_name),
        (KEYS.licensed, licensed),
    ):
        if value is not None:
            custom[key] = value
    custom.update(extra)
    return RawRecord(
        id=record_id,
        first_name=first if first is not None else "Agent",
        last_name=last if last is not None else record_id,
        email=email,
        custom_fields=custom,
    )


@pytest.fixture()
def make_record() -> RecordFactory:
    return _make_record


@pytest.fixture()
def settings() -> EngineSettings:
    return EngineSettings()


@pytest.fixture()
def fixed_time() -> datetime:
    return FIXED_TIME
