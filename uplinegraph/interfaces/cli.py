"""Command line interface for building and inspecting hierarchy snapshots."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.table import Table

from uplinegraph.application.analysis import analyze_hierarchy, upline_parent_report
from uplinegraph.application.pipeline import SnapshotPipeline
from uplinegraph.core.config import EngineSettings, load_settings
from uplinegraph.core.errors import UplineGraphError
from uplinegraph.domain.contracts import SnapshotDocument, export_snapshot_schema
from uplinegraph.infrastructure.reports import CsvReportSink
from uplinegraph.infrastructure.snapshots import (
    CompositeSnapshotSink,
    JsonSnapshotSink,
    SnapshotSink,
    load_export,
    load_field_definitions,
    load_snapshot,
)

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        moment = datetime.fromisoformat(value)
    except ValueError as exc:
        raise click.BadParameter(
            f"'{value}' is not an ISO-8601 timestamp", param_hint="--generated-at"
        ) from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment


def _apply_overrides(
    settings: EngineSettings,
    *,
    root_identifier: str | None,
    root_contact_id: str | None,
    root_email: str | None,
    exclude_test_candidates: bool | None,
) -> EngineSettings:
    overrides: dict[str, object] = {}
    if root_identifier is not None:
        overrides["organization_root_identifier"] = root_identifier
    if root_contact_id is not None:
        overrides["fallback_root_contact_id"] = root_contact_id
    if root_email is not None:
        overrides["fallback_root_email"] = root_email
    if exclude_test_candidates is not None:
        overrides["exclude_low_quality_candidates"] = exclude_test_candidates
    return replace(settings, **overrides) if overrides else settings


def _build_sink(output_path: Path | None, csv_path: Path | None) -> SnapshotSink:
    sinks: list[SnapshotSink] = []
    if output_path is not None:
        sinks.append(JsonSnapshotSink(path=output_path))
    if csv_path is not None:
        sinks.append(CsvReportSink(path=csv_path))
    return CompositeSnapshotSink(tuple(sinks))


def _echo_issue_summary(document: SnapshotDocument) -> None:
    issues = document.issues
    click.echo("Issues:")
    click.echo(f"  Missing identifier: {issues.missing_identifier.count}")
    click.echo(f"  Duplicate identifier groups: {issues.duplicate_identifier.count}")
    click.echo(f"  Upline not found: {issues.upline_not_found.count}")
    click.echo(f"  Cycle breaks: {issues.cycle_breaks.count}")


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Verbosity of pipeline logging on stderr.",
)
def cli(log_level: str) -> None:
    """Resolve CRM contact exports into an upline reporting hierarchy."""

    logging.basicConfig(level=getattr(logging, log_level.upper()))
    # Route sink events through stdlib logging so stdout stays machine-readable.
    structlog.configure(
        processors=[structlog.processors.KeyValueRenderer(key_order=["event"])],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--fields",
    "fields_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Custom field definitions used to resolve field ids to keys.",
)
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the snapshot JSON document to this path.",
)
@click.option(
    "--csv",
    "csv_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write a flattened CSV report of the hierarchy to this path.",
)
@click.option(
    "--format", "output_format", type=click.Choice(["text", "json"]), default="text"
)
@click.option("--root-identifier", help="Organisation root license number.")
@click.option("--root-contact-id", help="Contact id of the fallback root.")
@click.option("--root-email", help="E-mail address of the fallback root.")
@click.option(
    "--exclude-test-candidates/--include-test-candidates",
    "exclude_test_candidates",
    default=None,
    help="Drop likely test contacts from match candidates.",
)
@click.option(
    "--generated-at",
    "generated_at",
    help="Fixed ISO-8601 timestamp for reproducible output.",
)
def build(
    input_path: Path,
    fields_path: Path | None,
    output_path: Path | None,
    csv_path: Path | None,
    output_format: str,
    root_identifier: str | None,
    root_contact_id: str | None,
    root_email: str | None,
    exclude_test_candidates: bool | None,
    generated_at: str | None,
) -> None:
    """Build a hierarchy snapshot from a JSON contact export."""

    timestamp = _parse_timestamp(generated_at)
    settings = _apply_overrides(
        load_settings(),
        root_identifier=root_identifier,
        root_contact_id=root_contact_id,
        root_email=root_email,
        exclude_test_candidates=exclude_test_candidates,
    )
    try:
        bundle = load_export(input_path)
        definitions = list(bundle.custom_fields)
        if fields_path is not None:
            definitions.extend(load_field_definitions(fields_path))
    except UplineGraphError as exc:
        raise click.ClickException(str(exc)) from exc

    document = SnapshotPipeline(settings).run_payloads(
        bundle.contacts,
        field_definitions=definitions,
        opportunities=bundle.opportunities,
        pipelines=bundle.pipelines,
        generated_at=timestamp,
    )
    _build_sink(output_path, csv_path).write(document)

    if output_format == "json":
        click.echo(document.to_json())
        return

    stats = document.stats
    click.echo(f"Contacts: {len(bundle.contacts)}")
    click.echo(f"Branches: {stats.branches}")
    click.echo(f"Producers: {stats.producers}")
    click.echo(f"Enhanced: {stats.enhanced}")
    _echo_issue_summary(document)
    if output_path is not None:
        click.echo(f"Snapshot written to {output_path}")
    if csv_path is not None:
        click.echo(f"CSV report written to {csv_path}")


@cli.command()
@click.argument("snapshot_path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--upline",
    "upline_ids",
    multiple=True,
    help="Report where contacts stating this upline identifier were placed.",
)
@click.option(
    "--format", "output_format", type=click.Choice(["text", "json"]), default="text"
)
def analyze(
    snapshot_path: Path, upline_ids: tuple[str, ...], output_format: str
) -> None:
    """Summarise depth, upline sources and placements of a saved snapshot."""

    try:
        document = load_snapshot(snapshot_path)
    except UplineGraphError as exc:
        raise click.ClickException(str(exc)) from exc

    analysis = analyze_hierarchy(document)
    reports = upline_parent_report(document, upline_ids)

    if output_format == "json":
        payload = analysis.as_dict()
        payload["uplineReports"] = [report.as_dict() for report in reports]
        click.echo(json.dumps(payload, indent=2))
        return

    click.echo(f"Generated at: {document.generated_at.isoformat()}")
    click.echo(f"Nodes: {analysis.node_count}")
    click.echo(f"Roots: {analysis.root_count}")
    click.echo(f"Max depth: {analysis.max_depth}")
    for level, count in analysis.depth_distribution.items():
        click.echo(f"  Level {level}: {count} nodes")

    table = Table(title="Upline sources")
    table.add_column("Source")
    table.add_column("Nodes", justify="right")
    for source, count in analysis.source_counts.items():
        table.add_row(source, str(count))
    Console().print(table)

    click.echo(f"Matched uplines: {analysis.matched_uplines}")
    click.echo(f"Unmatched uplines: {len(analysis.unmatched_uplines)}")
    for entry in analysis.unmatched_uplines:
        stated = entry.stated_upline_identifier or entry.stated_upline_email
        click.echo(f"  - {entry.label} (stated {stated}): {entry.reason}")

    for report in reports:
        click.echo(
            f"Upline {report.upline_identifier} ({report.contact_count} contacts):"
        )
        if not report.placements:
            click.echo("  No contacts state this upline identifier.")
        for placement in report.placements:
            matches = "yes" if placement.matches_upline else "no"
            click.echo(
                f"  Parent: {placement.parent_label} "
                f"[ID: {placement.parent_id or 'root'}, matches upline: {matches}]"
            )
            for contact in placement.contacts:
                click.echo(f"    - {contact}")


@cli.command()
def schema() -> None:
    """Print the JSON Schema of the snapshot document."""

    click.echo(json.dumps(export_snapshot_schema(), indent=2))


__all__ = ["cli"]
