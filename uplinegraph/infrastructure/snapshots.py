"""Reading CRM exports and persisting snapshot documents."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import structlog
from pydantic import ValidationError
from structlog.typing import FilteringBoundLogger

from uplinegraph.core import config
from uplinegraph.core.errors import SnapshotInputError
from uplinegraph.domain.contracts import SnapshotDocument


class SnapshotSink(Protocol):
    def write(self, document: SnapshotDocument) -> Path | None: ...


@dataclass(frozen=True)
class ExportBundle:
    """Contacts plus the optional side data that ships with a CRM export."""

    contacts: tuple[Mapping[str, Any], ...]
    custom_fields: tuple[Mapping[str, Any], ...] = ()
    opportunities: tuple[Mapping[str, Any], ...] = ()
    pipelines: Any = None


def _read_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError as exc:
        raise SnapshotInputError(f"Input file not found: {path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise SnapshotInputError(f"Could not read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SnapshotInputError(f"{path} is not valid JSON: {exc}") from exc


def _mappings(value: Any) -> tuple[Mapping[str, Any], ...]:
    if not isinstance(value, list):
        return ()
    return tuple(item for item in value if isinstance(item, Mapping))


def load_field_definitions(path: Path) -> tuple[Mapping[str, Any], ...]:
    """Custom field definitions, either a bare list or ``{"customFields": [...]}``."""

    payload = _read_json(path)
    if isinstance(payload, Mapping):
        payload = payload.get("customFields")
    if not isinstance(payload, list):
        raise SnapshotInputError(f"{path} does not contain a custom field list")
    return _mappings(payload)


def load_export(path: Path) -> ExportBundle:
    """Load a contact export.

    Accepts a bare list of contacts or an object with ``contacts`` and,
    optionally, ``customFields``, ``opportunities`` and ``pipelines``.
    """

    payload = _read_json(path)
    if isinstance(payload, list):
        return ExportBundle(contacts=_mappings(payload))
    if not isinstance(payload, Mapping) or not isinstance(
        payload.get("contacts"), list
    ):
        raise SnapshotInputError(f"{path} does not contain a contacts list")
    return ExportBundle(
        contacts=_mappings(payload["contacts"]),
        custom_fields=_mappings(payload.get("customFields")),
        opportunities=_mappings(payload.get("opportunities")),
        pipelines=payload.get("pipelines"),
    )


def load_snapshot(path: Path) -> SnapshotDocument:
    payload = _read_json(path)
    try:
        return SnapshotDocument.model_validate(payload)
    except ValidationError as exc:
        raise SnapshotInputError(f"{path} is not a valid snapshot: {exc}") from exc


class NullSnapshotSink:
    """No-op sink used when persistence is disabled."""

    def write(self, document: SnapshotDocument) -> Path | None:
        return None


@dataclass(slots=True)
class JsonSnapshotSink:
    """Write the snapshot document as pretty-printed JSON."""

    path: Path = field(default_factory=lambda: config.SNAPSHOT_JSON)
    indent: int | None = 2
    logger: FilteringBoundLogger = field(
        default_factory=lambda: structlog.get_logger(__name__)
    )

    def write(self, document: SnapshotDocument) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(document.to_json(indent=self.indent), encoding="utf-8")
        self.logger.info(
            "snapshot_sink.write",
            path=str(self.path),
            branches=document.stats.branches,
            generated_at=document.generated_at.isoformat(),
        )
        return self.path


@dataclass(slots=True)
class CompositeSnapshotSink:
    """Dispatch one document to several sinks."""

    sinks: Sequence[SnapshotSink]

    def write(self, document: SnapshotDocument) -> Path | None:
        written: Path | None = None
        for sink in self.sinks:
            written = sink.write(document) or written
        return written


__all__ = [
    "CompositeSnapshotSink",
    "ExportBundle",
    "JsonSnapshotSink",
    "NullSnapshotSink",
    "SnapshotSink",
    "load_export",
    "load_field_definitions",
    "load_snapshot",
]
